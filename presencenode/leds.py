"""Groups of configured LEDs, their MQTT state and the commands they accept."""

from __future__ import annotations

import json
import logging
from enum import IntEnum
from typing import Any, Iterable

from .defaults import UPDATE_COMPLETE, UPDATE_STARTED
from .led import LED, Addressable, ControlType, SinglePWM
from .mqtt import Discovery, EntityCategory, publish_with_retry, slugify

log = logging.getLogger(__name__)

STATE_ON = "ON"
STATE_OFF = "OFF"

# Packed 0xRRGGBB colours used for status signalling.
RED = 0xFF0000
ORANGE = 0xFF3000
PURPLE = 0x400080
PINK = 0xFF1493


class LedType(IntEnum):
    """LED hardware types offered in the settings dropdown."""

    PWM = 0
    PWM_INVERTED = 1
    ADDRESSABLE_GRB = 2
    ADDRESSABLE_GRBW = 3
    ADDRESSABLE_RGB = 4
    ADDRESSABLE_RGBW = 5

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    LedType.PWM: "PWM",
    LedType.PWM_INVERTED: "PWM Inverted",
    LedType.ADDRESSABLE_GRB: "Addressable GRB",
    LedType.ADDRESSABLE_GRBW: "Addressable GRBW",
    LedType.ADDRESSABLE_RGB: "Addressable RGB",
    LedType.ADDRESSABLE_RGBW: "Addressable RGBW",
}


def new_led(index: int, control_type: ControlType, led_type: int, pin: int, count: int) -> LED:
    """Create the LED object for one configured slot; pin -1 disables it."""
    if pin == -1:
        return LED(index, ControlType.NONE)
    led_type = int(led_type)
    if led_type >= 2:
        return Addressable(index, control_type, led_type - 2, pin, count)
    return SinglePWM(index, control_type, led_type == 1, pin)


def _json_uint(value: Any, limit: int) -> int:
    """Read a JSON value as an unsigned integer, giving 0 when it does not fit."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)) and 0 <= value <= limit:
        return int(value)
    return 0


class LedController:
    """Drives all LEDs according to their control type."""

    def __init__(self, leds: Iterable[LED], discovery: Discovery) -> None:
        self.leds = list(leds)
        self.discovery = discovery
        self.online = False
        self.current_count = 0
        self._last_count = 0
        self.status_leds = [led for led in self.leds if led.control_type == ControlType.STATUS]
        self.count_leds = [led for led in self.leds if led.control_type == ControlType.COUNT]
        self.motion_leds = [led for led in self.leds if led.control_type == ControlType.MOTION]

    def setup(self) -> None:
        for led in self.leds:
            led.begin()

    def loop(self) -> None:
        for led in self.leds:
            led.service()

    def send_state(self, led: LED) -> bool:
        """Publish the LED's JSON state to its room topic."""
        doc: dict[str, Any] = {"state": STATE_ON if led.state else STATE_OFF}
        if led.state:
            doc["brightness"] = led.brightness
            c = led.color
            doc["color"] = {"r": c.red, "g": c.green, "b": c.blue}
        payload = json.dumps(doc, separators=(",", ":"))
        topic = f"{self.discovery.rooms_topic}/{slugify(led.name)}"
        return publish_with_retry(
            self.discovery.publish, topic, payload, retain=True, qos=0,
            attempts=self.discovery.attempts, pause=self.discovery.pause,
        )

    def send_discovery(self) -> bool:
        for led in self.leds:
            if led.control_type == ControlType.MQTT and not self.discovery.light(
                led.name, EntityCategory.NONE, led.has_rgb()
            ):
                return False
        return True

    def send_online(self) -> bool:
        if self.online:
            return True
        for led in self.leds:
            if led.control_type > ControlType.NONE and not self.send_state(led):
                return False
        self.online = True
        return True

    def connected(self, wifi: bool, mqtt: bool) -> None:
        for led in self.status_leds:
            led.set_color(128 if wifi else 0, 128, 128 if mqtt else 0)

    def seen(self, in_progress: bool) -> None:
        for led in self.status_leds:
            if led.has_rgb():
                led.set_state(True)
                led.set_packed_color(PURPLE if in_progress else ORANGE)
            else:
                led.set_state(in_progress)

    def wifi(self, percent: int) -> None:
        for led in self.status_leds:
            led.set_packed_color(RED)
            led.set_state(percent % 2 == 0)

    def portal(self, percent: int) -> None:
        for led in self.status_leds:
            led.set_packed_color(PINK)
            led.set_state(percent % 2 == 0)

    def update(self, percent: int) -> None:
        for led in self.status_leds:
            if percent in (UPDATE_STARTED, UPDATE_COMPLETE):
                led.set_color(0, 128, 0)
            else:
                led.set_state(percent % 2 == 0)

    def find(self, command: str) -> LED | None:
        return next((led for led in self.leds if led.id == command), None)

    def command(self, command: str, payload: str) -> bool:
        """Apply a JSON light command; False when no LED answers to ``command``."""
        bulb = self.find(command)
        if bulb is None:
            return False
        try:
            root = json.loads(payload)
        except ValueError as exc:
            log.warning("LED command for %s: invalid JSON: %s", command, exc)
            return True
        if not isinstance(root, dict):
            root = {}

        changed = False
        if "color" in root:
            color = root["color"] if isinstance(root["color"], dict) else {}
            changed = changed or bulb.set_color(
                _json_uint(color.get("r"), 255),
                _json_uint(color.get("g"), 255),
                _json_uint(color.get("b"), 255),
            )
        if "brightness" in root:
            changed = changed or bulb.set_brightness(_json_uint(root["brightness"], 255))
        if "white_value" in root:
            changed = changed or bulb.set_white(_json_uint(root["white_value"], 255))
        if "color_temp" in root:
            changed = changed or bulb.set_color_temperature(_json_uint(root["color_temp"], 0xFFFF))
        if "effect" in root:
            effect = root["effect"] if isinstance(root["effect"], str) else ""
            changed = changed or bulb.set_effect(effect)
        if "state" in root:
            changed = changed or bulb.set_state(root["state"] == STATE_ON)

        if changed:
            self.send_state(bulb)
        return True

    def counting(self, added: bool) -> None:
        self.current_count += 1 if added else -1
        if self.current_count != self._last_count:
            self._last_count = self.current_count
            for led in self.count_leds:
                led.set_state(self.current_count > 0)

    def count(self, value: int) -> None:
        self.current_count = value
        for led in self.count_leds:
            led.set_state(self.current_count > 0)

    def motion(self, pir: bool, radar: bool) -> None:
        for led in self.motion_leds:
            led.set_state(pir or radar)