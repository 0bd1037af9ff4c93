"""PIR and radar motion inputs with debounce and MQTT reporting."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable

from .defaults import DEFAULT_DEBOUNCE_TIMEOUT
from .mqtt import Discovery, EntityCategory, publish_with_retry

HIGH = 1
LOW = 0


class PinType(IntEnum):
    """How a motion input pin is wired; odd values are active low."""

    PULLUP = 0
    PULLUP_INVERTED = 1
    PULLDOWN = 2
    PULLDOWN_INVERTED = 3
    FLOATING = 4
    FLOATING_INVERTED = 5

    @property
    def inverted(self) -> bool:
        return bool(self.value & 0x01)

    @property
    def detected_level(self) -> int:
        return LOW if self.inverted else HIGH


@dataclass
class MotionInput:
    """One motion input; stays active for ``timeout`` seconds after detection."""

    pin: int = -1
    pin_type: PinType = PinType.PULLUP
    timeout: float = DEFAULT_DEBOUNCE_TIMEOUT
    value: bool | None = None
    last_detected_ms: int = 0

    @property
    def enabled(self) -> bool:
        return self.pin >= 0

    def sample(self, level: int, now_ms: int) -> bool | None:
        """Feed a pin reading; return the new state when it changed, else None."""
        if not self.enabled:
            return None
        detected = int(level) == PinType(self.pin_type).detected_level
        if detected:
            self.last_detected_ms = now_ms
        active = detected or (now_ms - self.last_detected_ms) < self.timeout * 1000
        if active == self.value:
            return None
        self.value = active
        return active


def _to_int(text: str) -> int:
    match = re.match(r"\s*[+-]?\d+", text)
    return int(match.group()) if match else 0


class Motion:
    """Combines PIR and radar inputs into a motion sensor."""

    def __init__(
        self,
        discovery: Discovery,
        pir: MotionInput | None = None,
        radar: MotionInput | None = None,
        on_motion: Callable[[bool, bool], None] | None = None,
        save: Callable[[str, str], None] | None = None,
    ) -> None:
        self.discovery = discovery
        self.pir = pir if pir is not None else MotionInput()
        self.radar = radar if radar is not None else MotionInput()
        self.on_motion = on_motion
        self.save = save
        self.last_motion: bool | None = None
        self.online = False

    def _pub(self, suffix: str, payload: str) -> bool:
        d = self.discovery
        return publish_with_retry(
            d.publish, f"{d.rooms_topic}/{suffix}", payload, retain=True, qos=0,
            attempts=d.attempts, pause=d.pause,
        )

    def loop(self, now_ms: int, pir_level: int | None = None, radar_level: int | None = None) -> None:
        """Sample both inputs and publish any change."""
        for name, sensor, level in (("pir", self.pir, pir_level), ("radar", self.radar, radar_level)):
            if level is None:
                continue
            changed = sensor.sample(level, now_ms)
            if changed is not None:
                self._pub(name, "ON" if changed else "OFF")

        motion = bool(self.pir.value) or bool(self.radar.value)
        if motion == self.last_motion:
            return
        if self.on_motion is not None:
            self.on_motion(self.pir.value is True, self.radar.value is True)
        self._pub("motion", "ON" if motion else "OFF")
        self.last_motion = motion

    def serial_report(self) -> str:
        return (
            f"PIR Sensor:   {'enabled' if self.pir.enabled else 'disabled'}\n"
            f"Radar Sensor: {'enabled' if self.radar.enabled else 'disabled'}"
        )

    def send_discovery(self) -> bool:
        if not self.pir.enabled and not self.radar.enabled:
            return True
        if self.pir.enabled and not self.discovery.number("Pir Timeout", EntityCategory.CONFIG):
            return False
        if self.radar.enabled and not self.discovery.number("Radar Timeout", EntityCategory.CONFIG):
            return False
        return self.discovery.binary_sensor("Motion", EntityCategory.NONE, "motion")

    def command(self, command: str, payload: str) -> bool:
        """Handle timeout settings; False for commands that are not ours."""
        if command == "pir_timeout":
            self.pir.timeout = _to_int(payload)
        elif command == "radar_timeout":
            self.radar.timeout = _to_int(payload)
        else:
            return False
        if self.save is not None:
            self.save(f"/{command}", payload)
        return True

    def send_online(self) -> bool:
        if self.online:
            return True
        if not self._pub("pir_timeout", f"{self.pir.timeout:.2f}"):
            return False
        if not self._pub("radar_timeout", f"{self.radar.timeout:.2f}"):
            return False
        self.online = True
        return True