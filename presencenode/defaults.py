"""Compile-time defaults for the presence node and per-board hardware settings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Milliseconds between checks for new firmware.
CHECK_FOR_UPDATES_INTERVAL = 900_000

# Seconds to wait for a station Wi-Fi connection.
DEFAULT_WIFI_TIMEOUT = 120

# Seconds to keep the captive portal up before rebooting.
DEFAULT_PORTAL_TIMEOUT = 300

UPDATE_STARTED = -255
UPDATE_COMPLETE = 255

JSON_BUFFER_SIZE = 10240

BLE_SCAN_INTERVAL = 0x80
BLE_SCAN_WINDOW = 0x80

# Base topic for room detection.
CHANNEL = "espresense"

DEFAULT_MQTT_HOST = "mqtt.z13.org"
DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_USER = ""
DEFAULT_MQTT_PASSWORD = ""

# Devices calculated to be further than this (metres) are not reported.
DEFAULT_MAX_DISTANCE = 16

# Seconds before reporting radar/motion cleared.
DEFAULT_DEBOUNCE_TIMEOUT = 0.5

DEFAULT_QUERY = ""
DEFAULT_INCLUDE = ""
DEFAULT_EXCLUDE = ""

DEFAULT_RX_REF_RSSI = -65
DEFAULT_TX_REF_RSSI = -59
DEFAULT_ABSORPTION = 3.5

# Milliseconds after which an unseen fingerprint is removed.
DEFAULT_FORGET_MS = 150_000

# Skip an update if the beacon moved less than this many metres...
DEFAULT_SKIP_DISTANCE = 0.5
# ...and the last report is younger than this many milliseconds.
DEFAULT_SKIP_MS = 5000

DEFAULT_TSL2561_I2C_GAIN = "auto"

DEFAULT_ARDUINO_OTA = False
DEFAULT_AUTO_UPDATE = False

# Numeric value of the "status" LED control type.
_CONTROL_STATUS = 1


class Board(Enum):
    """Hardware variants with their own defaults."""

    GENERIC = "generic"
    M5STICK = "m5stick"
    M5ATOM = "m5atom"
    MACCHINA_A0 = "macchina_a0"
    ESP32C3 = "esp32c3"


@dataclass(frozen=True)
class BoardDefaults:
    """Pin assignments and limits that depend on the board."""

    i2c_bus_1_sda: int
    i2c_bus_1_scl: int
    i2c_bus_2_sda: int
    i2c_bus_2_scl: int
    i2c_bus: int
    led1_type: int
    led1_pin: int
    led1_control: int
    led1_count: int
    max_brightness: int
    button: int | None = None
    button_pressed: int | None = None


_GENERIC_I2C = dict(i2c_bus_1_sda=21, i2c_bus_1_scl=22, i2c_bus_2_sda=-1, i2c_bus_2_scl=-1, i2c_bus=1)
_GENERIC_LED = dict(led1_type=0, led1_pin=2, led1_control=_CONTROL_STATUS, led1_count=1, max_brightness=100)

_TABLE: dict[Board, BoardDefaults] = {
    Board.GENERIC: BoardDefaults(**_GENERIC_I2C, **_GENERIC_LED),
    Board.M5STICK: BoardDefaults(
        i2c_bus_1_sda=32, i2c_bus_1_scl=33, i2c_bus_2_sda=21, i2c_bus_2_scl=22, i2c_bus=1,
        led1_type=1, led1_pin=10, led1_control=_CONTROL_STATUS, led1_count=1,
        max_brightness=100, button=39, button_pressed=0,
    ),
    Board.M5ATOM: BoardDefaults(
        i2c_bus_1_sda=26, i2c_bus_1_scl=32, i2c_bus_2_sda=25, i2c_bus_2_scl=21, i2c_bus=1,
        led1_type=2, led1_pin=27, led1_control=_CONTROL_STATUS, led1_count=25,
        max_brightness=50, button=39, button_pressed=0,
    ),
    Board.MACCHINA_A0: BoardDefaults(
        **_GENERIC_I2C,
        led1_type=2, led1_pin=2, led1_control=_CONTROL_STATUS, led1_count=1, max_brightness=100,
    ),
    Board.ESP32C3: BoardDefaults(
        i2c_bus_1_sda=19, i2c_bus_1_scl=18, i2c_bus_2_sda=-1, i2c_bus_2_scl=-1, i2c_bus=1,
        **_GENERIC_LED,
    ),
}


def board_defaults(board: Board | str = Board.GENERIC) -> BoardDefaults:
    """Return the defaults for a board, given as a Board or its name."""
    return _TABLE[Board(board)]