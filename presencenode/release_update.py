"""Firmware download and flashing from an HTTP release URL."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from enum import Enum, IntEnum
from typing import Any, BinaryIO, Callable

log = logging.getLogger(__name__)

# fetch(url, timeout_ms, user_agent) -> (status, content length or -1, body stream)
Fetcher = Callable[[str, int, str], "tuple[int, int, Any]"]

_CONNECTION_REFUSED = -1
_CHUNK = 4096


class UpdateResult(Enum):
    FAILED = 0
    NO_UPDATES = 1
    OK = 2


class UpdateErrorCode(IntEnum):
    TOO_LESS_SPACE = -100
    SERVER_NOT_REPORT_SIZE = -101
    SERVER_FILE_NOT_FOUND = -102
    SERVER_FORBIDDEN = -103
    SERVER_WRONG_HTTP_CODE = -104
    SERVER_FAULTY_MD5 = -105
    BIN_VERIFY_HEADER_FAILED = -106
    BIN_FOR_WRONG_FLASH = -107
    NO_PARTITION = -108


_MESSAGES = {
    UpdateErrorCode.TOO_LESS_SPACE: "Not Enough space",
    UpdateErrorCode.SERVER_NOT_REPORT_SIZE: "Server Did Not Report Size",
    UpdateErrorCode.SERVER_FILE_NOT_FOUND: "File Not Found (404)",
    UpdateErrorCode.SERVER_FORBIDDEN: "Forbidden (403)",
    UpdateErrorCode.SERVER_WRONG_HTTP_CODE: "Wrong HTTP Code",
    UpdateErrorCode.SERVER_FAULTY_MD5: "Wrong MD5",
    UpdateErrorCode.BIN_VERIFY_HEADER_FAILED: "Verify Bin Header Failed",
    UpdateErrorCode.BIN_FOR_WRONG_FLASH: "New Binary Does Not Fit Flash Size",
    UpdateErrorCode.NO_PARTITION: "Partition Could Not be Found",
}


def error_message(code: int) -> str:
    """Describe an update error code; empty for no error or an unknown code."""
    if code == 0:
        return ""
    if code > 0:
        return f"Update error: {code}"
    if code > -100:
        return f"HTTP error: {code}"
    try:
        return _MESSAGES[UpdateErrorCode(code)]
    except ValueError:
        return ""


class MemoryFlasher:
    """Firmware sink that keeps the image in memory."""

    ERROR_WRITE = 1
    ERROR_SPACE = 4
    ERROR_SIZE = 5
    ERROR_STREAM = 6

    def __init__(self, capacity: int = 0x1E0000) -> None:
        self.capacity = capacity
        self.data = bytearray()
        self.expected = 0
        self.error = 0
        self.error_text = ""
        self.on_progress: Callable[[int, int], None] | None = None

    def free_space(self) -> int:
        return self.capacity

    def _fail(self, code: int, text: str) -> None:
        self.error = code
        self.error_text = text

    def begin(self, size: int) -> bool:
        self.data = bytearray()
        self.error = 0
        self.error_text = ""
        if size <= 0 or size > self.capacity:
            self._fail(self.ERROR_SPACE, "Not Enough Space")
            return False
        self.expected = size
        return True

    def write(self, stream: BinaryIO) -> int:
        while len(self.data) < self.expected:
            chunk = stream.read(min(_CHUNK, self.expected - len(self.data)))
            if not chunk:
                self._fail(self.ERROR_STREAM, "Stream Read Timeout")
                break
            self.data.extend(chunk)
            if self.on_progress is not None:
                self.on_progress(len(self.data), self.expected)
        return len(self.data)

    def end(self) -> bool:
        if len(self.data) != self.expected:
            self._fail(self.ERROR_SIZE, "Bad Size Given")
            return False
        return True


def _urllib_fetch(url: str, timeout_ms: int, user_agent: str) -> tuple[int, int, Any]:
    request = urllib.request.Request(url, headers={"User-Agent": user_agent})
    try:
        response = urllib.request.urlopen(request, timeout=timeout_ms / 1000)
    except urllib.error.HTTPError as exc:
        return exc.code, -1, exc
    except (urllib.error.URLError, OSError) as exc:
        log.warning("HTTP error: %s", exc)
        return _CONNECTION_REFUSED, -1, None
    length = response.headers.get("Content-Length")
    size = int(length) if length and length.isdigit() else -1
    return response.status, size, response


class HttpReleaseUpdate:
    """Downloads a firmware image and writes it to a flasher."""

    def __init__(
        self,
        fetch: Fetcher | None = None,
        flasher: Any = None,
        restart: Callable[[], None] | None = None,
        version: str | None = None,
    ) -> None:
        self.fetch = fetch or _urllib_fetch
        self.flasher = flasher if flasher is not None else MemoryFlasher()
        self.restart = restart
        self.version = version
        self.timeout_ms = 8000
        self.reboot_on_update = True
        self.on_start: Callable[[], None] | None = None
        self.on_end: Callable[[bool], None] | None = None
        self.on_error: Callable[[int], None] | None = None
        self.on_progress: Callable[[int, int], None] | None = None
        self.last_error = 0
        self._detail = ""

    @property
    def user_agent(self) -> str:
        return f"ESPresense/{self.version or '0.0'}"

    def _set_error(self, code: int, detail: str = "") -> None:
        self.last_error = code
        self._detail = detail
        if self.on_error is not None:
            self.on_error(code)

    def update(self, url: str) -> UpdateResult:
        """Fetch ``url`` and flash it when the server answers with an image."""
        status, size, stream = self.fetch(url, self.timeout_ms, self.user_agent)
        try:
            return self.handle_response(status, size, stream)
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

    def handle_response(self, status: int, size: int, stream: Any) -> UpdateResult:
        """Act on an HTTP status and body."""
        if status <= 0:
            log.warning("HTTP error: %d", status)
            self._set_error(status)
            return UpdateResult.FAILED
        if status == 200:
            if size <= 0:
                log.warning("Content-Length was 0 or wasn't set by Server?!")
                self._set_error(UpdateErrorCode.SERVER_NOT_REPORT_SIZE)
                return UpdateResult.FAILED
            free = self.flasher.free_space()
            if not free:
                self._set_error(UpdateErrorCode.NO_PARTITION)
                return UpdateResult.FAILED
            if size > free:
                log.warning("FreeSketchSpace too low (%d) needed: %d", free, size)
                self._set_error(UpdateErrorCode.TOO_LESS_SPACE)
                return UpdateResult.FAILED
            if self.on_start is not None:
                self.on_start()
            if self.run_update(stream, size):
                if self.on_end is not None:
                    self.on_end(True)
                if self.reboot_on_update and self.restart is not None:
                    self.restart()
                return UpdateResult.OK
            if self.on_end is not None:
                self.on_end(False)
            return UpdateResult.FAILED
        if status == 304:
            return UpdateResult.NO_UPDATES
        if status == 404:
            self._set_error(UpdateErrorCode.SERVER_FILE_NOT_FOUND)
        elif status == 403:
            self._set_error(UpdateErrorCode.SERVER_FORBIDDEN)
        else:
            log.warning("HTTP Code is (%d)", status)
            self._set_error(UpdateErrorCode.SERVER_WRONG_HTTP_CODE)
        return UpdateResult.FAILED

    def _flash_failed(self, step: str) -> bool:
        self._set_error(self.flasher.error, self.flasher.error_text)
        log.error("Update.%s failed! (%s)", step, self.flasher.error_text)
        return False

    def run_update(self, stream: Any, size: int) -> bool:
        """Write ``size`` bytes from ``stream`` to the flasher."""
        if self.on_progress is not None:
            self.flasher.on_progress = self.on_progress
        if not self.flasher.begin(size):
            return self._flash_failed("begin")
        if self.on_progress is not None:
            self.on_progress(0, size)
        if self.flasher.write(stream) != size:
            return self._flash_failed("writeStream")
        if self.on_progress is not None:
            self.on_progress(size, size)
        if not self.flasher.end():
            return self._flash_failed("end")
        return True

    def last_error_string(self) -> str:
        code = self.last_error
        if code > 0 and self._detail:
            return f"Update error: {self._detail}"
        if -100 < code < 0 and self._detail:
            return f"HTTP error: {self._detail}"
        return error_message(code)