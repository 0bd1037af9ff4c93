"""Status lights: a base LED model plus addressable strips and single PWM LEDs."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Callable

from .defaults import board_defaults

log = logging.getLogger(__name__)

_DEFAULT_MAX_BRIGHTNESS = board_defaults().max_brightness


class ControlType(IntEnum):
    """What drives an LED."""

    NONE = -1
    MQTT = 0
    STATUS = 1
    MOTION = 2
    COUNT = 3


@dataclass(frozen=True)
class Color:
    red: int = 255
    green: int = 255
    blue: int = 128
    white: int = 128


class PixelOrder(Enum):
    GRB = "grb"
    GRBW = "grbw"
    RGB = "rgb"
    RGBW = "rgbw"


_ORDERS = {0: PixelOrder.GRB, 1: PixelOrder.GRBW, 2: PixelOrder.RGB, 3: PixelOrder.RGBW}


def pixel_order(type: int) -> PixelOrder:
    """Map an addressable LED type number to its pixel order (GRB if unknown)."""
    return _ORDERS.get(type, PixelOrder.GRB)


def pwm_duty(value: int, inverted: bool = False) -> int:
    """12-bit duty for a brightness 0..255 on a logarithmic curve."""
    if value >= 255:
        duty = 4096
    elif value <= 0:
        duty = 0
    else:
        duty = math.floor(4096.0 * 10.0 ** (0.0055 * (value - 255.0)) + 0.5)
    return 4096 - duty if inverted else duty


def scale_brightness(value: int, max_brightness: int) -> int:
    """Scale 0..255 linearly onto 0..max_brightness."""
    return value * max_brightness // 255


def _byte(value: int, what: str) -> int:
    value = int(value)
    if not 0 <= value <= 255:
        raise ValueError(f"{what} must be within 0..255, got {value}")
    return value


class LED:
    """An LED with colour, brightness and on/off state; setters report changes."""

    def __init__(self, index: int, control_type: ControlType) -> None:
        self.index = index
        self.control_type = ControlType(control_type)
        self._color = Color()
        self._state = True
        self._brightness = 64

    @property
    def id(self) -> str:
        return f"led_{self.index}"

    @property
    def name(self) -> str:
        return f"LED {self.index}"

    @property
    def color(self) -> Color:
        return self._color

    @property
    def state(self) -> bool:
        return self._state

    @property
    def brightness(self) -> int:
        return self._brightness

    @property
    def color_temperature(self) -> int:
        return 0

    def begin(self) -> None:
        pass

    def service(self) -> None:
        pass

    def set_brightness(self, brightness: int) -> bool:
        brightness = _byte(brightness, "brightness")
        if brightness == self._brightness:
            return False
        if brightness > 0:
            self._brightness = brightness
        else:
            LED.set_state(self, False)
        return True

    def set_color(self, red: int, green: int, blue: int) -> bool:
        rgb = (_byte(red, "red"), _byte(green, "green"), _byte(blue, "blue"))
        c = self._color
        if rgb == (c.red, c.green, c.blue):
            return False
        self._color = replace(c, red=rgb[0], green=rgb[1], blue=rgb[2])
        return True

    def set_packed_color(self, color: int) -> bool:
        """Set colour from a 0xRRGGBB integer (base colour only)."""
        return LED.set_color(self, (color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF)

    def set_white(self, white: int) -> bool:
        log.debug("LED.set_white(%d) unsupported", white)
        return False

    def set_color_temperature(self, temperature: int) -> bool:
        log.debug("LED.set_color_temperature(%d) unsupported", temperature)
        return False

    def set_effect(self, effect: str) -> bool:
        log.debug("LED.set_effect(%s) unsupported", effect)
        return False

    def set_state(self, state: bool) -> bool:
        state = bool(state)
        if state == self._state:
            return False
        self._state = state
        return True

    def has_rgb(self) -> bool:
        return False

    def has_rgbw(self) -> bool:
        return False


class _MemoryStrip:
    """Pixel strip driver that keeps its settings in memory."""

    def __init__(self, count: int, pin: int, order: PixelOrder) -> None:
        self.count = count
        self.pin = pin
        self.order = order
        self.color = (0, 0, 0)
        self.brightness = 0
        self.running = False
        self.frames = 0

    def set_color(self, red: int, green: int, blue: int) -> None:
        self.color = (red, green, blue)

    def set_brightness(self, brightness: int) -> None:
        self.brightness = brightness

    def start(self) -> None:
        self.running = True

    def service(self) -> None:
        if self.running:
            self.frames += 1


StripFactory = Callable[[int, int, PixelOrder], object]


class Addressable(LED):
    """An addressable RGB(W) strip; the driver is created lazily on first use."""

    def __init__(
        self,
        index: int,
        control_type: ControlType,
        type: int,
        pin: int,
        count: int,
        max_brightness: int = _DEFAULT_MAX_BRIGHTNESS,
        strip_factory: StripFactory = _MemoryStrip,
    ) -> None:
        super().__init__(index, control_type)
        self.type = type
        self.pin = pin
        self.count = count
        self.max_brightness = max_brightness
        self._strip_factory = strip_factory
        self.strip = None

    def begin(self) -> None:
        if self.strip is None:
            self.strip = self._strip_factory(self.count, self.pin, pixel_order(self.type))
            self.strip.set_color(255, 255, 128)
            self.strip.set_brightness(64)
            self.strip.start()

    def service(self) -> None:
        self.begin()
        self.strip.service()

    def set_color(self, red: int, green: int, blue: int) -> bool:
        if not LED.set_color(self, red, green, blue):
            return False
        self.begin()
        self.strip.set_color(red, green, blue)
        self.strip.set_brightness(self.brightness)
        LED.set_state(self, True)
        return True

    def set_brightness(self, brightness: int) -> bool:
        if not LED.set_brightness(self, brightness):
            return False
        self.begin()
        self.strip.set_brightness(scale_brightness(brightness, self.max_brightness))
        LED.set_state(self, brightness > 0)
        return True

    def set_state(self, state: bool) -> bool:
        if not LED.set_state(self, state):
            return False
        self.begin()
        level = self.brightness if state else 0
        self.strip.set_brightness(scale_brightness(level, self.max_brightness))
        return True

    def set_white(self, white: int) -> bool:
        white = _byte(white, "white")
        self.begin()
        self.strip.set_color(white, white, white)
        return True

    def set_effect(self, effect: str) -> bool:
        return True

    def has_rgb(self) -> bool:
        return True

    def has_rgbw(self) -> bool:
        return self.type in (1, 3)


class SinglePWM(LED):
    """A single LED dimmed by a 12-bit PWM channel numbered after the LED."""

    def __init__(
        self,
        index: int,
        control_type: ControlType,
        inverted: bool,
        pin: int,
        on_write: Callable[[int, int], None] | None = None,
    ) -> None:
        super().__init__(index, control_type)
        self.inverted = inverted
        self.pin = pin
        self.duty: int | None = None
        self._on_write = on_write

    def _set_duty(self, value: int) -> None:
        self.duty = pwm_duty(value, self.inverted)
        if self._on_write is not None:
            self._on_write(self.index, self.duty)

    def begin(self) -> None:
        self._set_duty(self.brightness)

    def set_state(self, state: bool) -> bool:
        if not LED.set_state(self, state):
            return False
        self._set_duty(self.brightness if state else 0)
        return True

    def set_brightness(self, brightness: int) -> bool:
        if not LED.set_brightness(self, brightness):
            return False
        self._set_duty(brightness)
        return True