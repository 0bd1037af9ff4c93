"""Automatic firmware update checks and update-related settings."""

from __future__ import annotations

import logging
import time
from typing import Callable

from .defaults import (
    CHECK_FOR_UPDATES_INTERVAL,
    DEFAULT_ARDUINO_OTA,
    DEFAULT_AUTO_UPDATE,
    UPDATE_COMPLETE,
    UPDATE_STARTED,
)
from .mqtt import Discovery, EntityCategory, publish_with_retry
from .release_update import HttpReleaseUpdate, UpdateResult

log = logging.getLogger(__name__)

LATEST_RELEASE_URL = "https://releases.example.com/latest/download"
BRANCH_ARTIFACT_URL = "https://artifacts.example.com/latest/download"
PRERELEASE_URL = "https://releases.example.com/latest-any/download"

# head(url) -> (status code, Location header)
HeadRequest = Callable[[str], "tuple[int, str]"]


def firmware_url(firmware: str | None = None, prerelease: bool = False, branch: str | None = None) -> str:
    """URL of the newest firmware image for this build."""
    if not firmware:
        return f"{LATEST_RELEASE_URL}/esp32.bin"
    if not prerelease:
        return f"{LATEST_RELEASE_URL}/{firmware}.bin"
    if branch:
        return f"{BRANCH_ARTIFACT_URL}/{branch}/{firmware}.bin"
    return f"{PRERELEASE_URL}/{firmware}.bin"


def version_marker(version: str | None) -> str:
    """Path fragment that appears in a release URL of this version."""
    return f"/{version}/" if version else ""


def _on_off(flag: bool) -> str:
    return "ON" if flag else "OFF"


class Updater:
    """Keeps update settings and checks for new firmware releases."""

    def __init__(
        self,
        discovery: Discovery,
        *,
        save: Callable[[str, str], None] | None = None,
        remove: Callable[[str], None] | None = None,
        restart: Callable[[], None] | None = None,
        on_update: Callable[[int], None] | None = None,
        firmware: str | None = None,
        version: str | None = None,
        branch: str | None = None,
        auto_update: bool = DEFAULT_AUTO_UPDATE,
        prerelease: bool = False,
        arduino_ota: bool = DEFAULT_ARDUINO_OTA,
        update_url: str = "",
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.discovery = discovery
        self.save = save or (lambda path, value: None)
        self.remove = remove or (lambda path: None)
        self.restart = restart or (lambda: None)
        self.on_update = on_update or (lambda percent: None)
        self.firmware = firmware
        self.version = version
        self.branch = branch
        self.auto_update = auto_update
        self.prerelease = prerelease
        self.arduino_ota = arduino_ota
        self.update_url = update_url
        self.clock = clock or (lambda: int(time.monotonic() * 1000))
        self.last_firmware_check = 0
        self.auto_update_attempts = 0
        self.update_started_ms = 0
        self._found_new_version = False

    @property
    def url(self) -> str:
        return firmware_url(self.firmware, self.prerelease, self.branch)

    def check_for_updates(self, head: HeadRequest) -> str | None:
        """Ask the release URL where it redirects; store and reboot on a new version."""
        marker = version_marker(self.version)
        if not marker:
            return None
        url = self.url
        log.info("Checking for new firmware version at '%s'", url)
        try:
            status, location = head(url)
        except OSError as exc:
            log.warning("Error on checking for update: %s", exc)
            return None
        found = None
        if 300 < status < 400:
            if marker not in location:
                log.info("Found new version: %s", location)
                self.save("/update", location)
                self._found_new_version = True
                found = location
        else:
            log.warning("Error on checking for update (sc=%d)", status)
        if self._found_new_version:
            log.info("Rebooting to start update")
            self.restart()
        return found

    def loop(self, now_ms: int, head: HeadRequest) -> bool:
        """Run an update check when due; return whether one ran."""
        if not self.auto_update or now_ms - self.last_firmware_check <= CHECK_FOR_UPDATES_INTERVAL:
            return False
        self.last_firmware_check = now_ms
        self.check_for_updates(head)
        return True

    def firmware_update(self, release: HttpReleaseUpdate) -> UpdateResult:
        """Flash the stored update URL, or the newest release, with ``release``."""

        def started() -> None:
            self.auto_update_attempts += 1
            self.update_started_ms = self.clock()
            self.on_update(UPDATE_STARTED)

        def ended(success: bool) -> None:
            if success:
                self.remove("/update")
            self.update_started_ms = 0
            self.on_update(UPDATE_COMPLETE)

        release.on_start = started
        release.on_end = ended
        release.on_progress = lambda progress, total: self.on_update(self.progress_percent(progress, total))
        url = self.update_url if self.update_url.startswith("http") else self.url
        result = release.update(url)
        if result is UpdateResult.FAILED:
            log.error("Http Update Failed (Error=%d): %s", release.last_error, release.last_error_string())
        elif result is UpdateResult.NO_UPDATES:
            log.info("No Update!")
        return result

    def send_online(self) -> bool:
        d = self.discovery
        for suffix, flag in (
            ("arduino_ota", self.arduino_ota),
            ("auto_update", self.auto_update),
            ("prerelease", self.prerelease),
        ):
            if not publish_with_retry(
                d.publish, f"{d.rooms_topic}/{suffix}", _on_off(flag), retain=True, qos=0,
                attempts=d.attempts, pause=d.pause,
            ):
                return False
        return True

    def send_discovery(self) -> bool:
        d = self.discovery
        return (
            d.switch("Auto Update", EntityCategory.CONFIG)
            and d.switch("Arduino OTA", EntityCategory.CONFIG)
            and d.switch("Prerelease", EntityCategory.CONFIG)
            and d.button("Update", EntityCategory.DIAGNOSTIC)
        )

    def command(self, command: str, payload: str) -> bool:
        """Handle update settings; False for commands that are not ours."""
        if command in ("arduino_ota", "auto_update", "prerelease"):
            flag = payload == "ON"
            setattr(self, command, flag)
            self.save(f"/{command}", "1" if flag else "0")
        elif command == "update":
            self.save("/update", payload)
            self.restart()
        else:
            return False
        return True

    def progress_percent(self, progress: int, total: int) -> int:
        """Whole percent done, as reported while flashing."""
        step = total // 100
        if step <= 0:
            raise ValueError(f"total must be at least 100, got {total}")
        return progress // step