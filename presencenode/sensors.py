"""Environmental sensors: load cell, I2C bus scanning and I2C climate sensors.

Hardware access is handed in as callables so each sensor only decides when to
sample, how to interpret a reading and what to publish.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .mqtt import Discovery, EntityCategory, publish_with_retry

log = logging.getLogger(__name__)

_FIRST_ADDRESS = 1
_LAST_ADDRESS = 126
_PROBE_OK = 0
_PROBE_UNKNOWN_ERROR = 4

_TSL2561_ADDRESSES = {"0x39": 0x39, "0x29": 0x29, "0x49": 0x49}
_TSL2561_GAINS = ("auto", "1x", "16x")

# Readings are not reported during the first 30 s after boot.
_SGP30_WARMUP_MS = 30_000


def _publish(discovery: Discovery, suffix: str, payload: str) -> bool:
    return publish_with_retry(
        discovery.publish, f"{discovery.rooms_topic}/{suffix}", payload, retain=True, qos=0,
        attempts=discovery.attempts, pause=discovery.pause,
    )


def _due(now_ms: int, last_ms: int, interval_ms: int) -> bool:
    return last_ms == 0 or now_ms - last_ms >= interval_ms


def sign_extend_24(value: int) -> int:
    """Copy bit 23 of a 24-bit reading into the top byte of a 32-bit word."""
    value &= 0xFFFFFF
    if value & 0x800000:
        value |= 0xFF000000
    return value


def format_serial_number(serial0: int, serial1: int, serial2: int) -> str:
    """Format the three 16-bit words of a sensor serial number."""
    words = (serial0, serial1, serial2)
    for word in words:
        if not 0 <= word <= 0xFFFF:
            raise ValueError(f"serial word must be within 0..0xFFFF, got {word}")
    return "Serial: 0x" + "".join(f"{word:04X}" for word in words)


def tsl2561_address(text: str) -> int | None:
    """I2C address for a configured TSL2561 address string, or None if unsupported."""
    return _TSL2561_ADDRESSES.get(text)


@dataclass
class HX711:
    """Load-cell amplifier read bit by bit over a clock and a data pin."""

    discovery: Discovery
    sck_pin: int = 0
    dout_pin: int = 0
    gain: int = 1
    interval_ms: int = 5000
    last_ms: int = 0

    @property
    def enabled(self) -> bool:
        return bool(self.sck_pin or self.dout_pin)

    def read(self, read_bit: Callable[[], int], pulse: Callable[[bool], None]) -> int:
        """Clock out 24 data bits, then the gain pulses; return the extended value."""
        data = 0
        for shift in range(23, -1, -1):
            pulse(True)
            data |= (int(read_bit()) & 1) << shift
            pulse(False)
        for _ in range(self.gain):
            pulse(True)
            pulse(False)
        return sign_extend_24(data)

    def loop(
        self,
        now_ms: int,
        ready: bool,
        read_bit: Callable[[], int],
        pulse: Callable[[bool], None],
    ) -> int | None:
        """Read and publish when due and the chip is ready; return the value read."""
        if not self.enabled:
            return None
        if now_ms - self.last_ms < self.interval_ms:
            return None
        if not ready:
            return None
        self.last_ms = now_ms
        data = self.read(read_bit, pulse)
        _publish(self.discovery, "raw_weight", str(data))
        return data

    def send_discovery(self) -> bool:
        if not self.enabled:
            return True
        return self.discovery.sensor("Raw Weight", EntityCategory.NONE)


@dataclass
class I2CBuses:
    """Configuration and state of the two I2C buses."""

    bus_1_sda: int = -1
    bus_1_scl: int = -1
    bus_2_sda: int = -1
    bus_2_scl: int = -1
    debug: bool = False
    bus_1_started: bool = False
    bus_2_started: bool = False

    @property
    def bus_1_enabled(self) -> bool:
        return self.bus_1_sda != -1

    @property
    def bus_2_enabled(self) -> bool:
        return self.bus_2_sda != -1

    @property
    def any_started(self) -> bool:
        return self.bus_1_started or self.bus_2_started

    def report(self, probe: Callable[[int, int], int]) -> list[str]:
        """Describe the started buses; with debug on, scan them using ``probe(bus, address)``."""
        buses = [
            (1, self.bus_1_started, self.bus_1_sda, self.bus_1_scl),
            (2, self.bus_2_started, self.bus_2_sda, self.bus_2_scl),
        ]
        lines = [
            f"I2C Bus {bus}:    sda={sda} scl={scl}"
            for bus, started, sda, scl in buses if started
        ]
        if not self.any_started or not self.debug:
            return lines

        found = 0
        for bus, started, _, _ in buses:
            if not started:
                continue
            lines.append(f"Scanning I2C for devices on Bus {bus}...")
            for address in range(_FIRST_ADDRESS, _LAST_ADDRESS + 1):
                error = probe(bus, address)
                if error == _PROBE_OK:
                    lines.append(f"I2C device found on bus {bus} at address 0x{address:02X}")
                    found += 1
                elif error == _PROBE_UNKNOWN_ERROR:
                    lines.append(f"Unknown error on bus {bus} at address 0x{address:02X}")
        if not found:
            lines.extend(["No I2C devices found", ""])
        return lines


@dataclass
class SHT:
    """Sensirion SHT temperature and humidity sensor."""

    discovery: Discovery
    bus: int = -1
    i2c_started: bool = False
    initialized: bool = False
    interval_ms: int = 60_000
    last_ms: int = 0

    def loop(
        self, now_ms: int, sample: Callable[[], "tuple[float, float] | None"]
    ) -> tuple[float, float] | None:
        """Sample when due; ``sample()`` gives (temperature, humidity) or None."""
        if not self.i2c_started or not self.initialized:
            return None
        if not _due(now_ms, self.last_ms, self.interval_ms):
            return None
        self.last_ms = now_ms
        result = sample()
        if result is None:
            return None
        temperature, humidity = result
        _publish(self.discovery, "temperature", f"{temperature:.2f}")
        _publish(self.discovery, "humidity", f"{humidity:.2f}")
        return temperature, humidity

    def send_discovery(self) -> bool:
        if not 1 <= self.bus <= 2:
            return True
        d = self.discovery
        return (
            d.sensor("Temperature", EntityCategory.NONE, "temperature", "°C")
            and d.sensor("Humidity", EntityCategory.NONE, "humidity", "%")
        )


@dataclass
class SCD4X:
    """Sensirion SCD4x CO2, temperature and humidity sensor."""

    discovery: Discovery
    address: str = ""
    bus: int = 1
    i2c_started: bool = False
    initialized: bool = False
    interval_ms: int = 1000
    last_ms: int = 0

    def loop(
        self,
        now_ms: int,
        data_ready: Callable[[], bool],
        measurement: Callable[[], "tuple[int, float, float]"],
    ) -> tuple[int, float, float] | None:
        """Read (co2, temperature, humidity) when due and ready; publish valid samples."""
        if not self.i2c_started or not self.initialized:
            return None
        if not _due(now_ms, self.last_ms, self.interval_ms):
            return None
        self.last_ms = now_ms
        try:
            if not data_ready():
                return None
        except OSError as exc:
            log.error("[SCD4X] Error trying to execute getDataReadyFlag(): %s", exc)
            return None
        try:
            co2, temperature, humidity = measurement()
        except OSError as exc:
            log.error("[SCD4X] Error trying to execute readMeasurement(): %s", exc)
            return None
        if co2 == 0:
            log.warning("[SCD4X] Invalid sample detected, skipping.")
            return None
        _publish(self.discovery, "co2", str(int(co2)))
        _publish(self.discovery, "humidity", f"{humidity:.1f}")
        _publish(self.discovery, "temperature", f"{temperature:.1f}")
        return co2, temperature, humidity

    def send_discovery(self) -> bool:
        if not self.address:
            return True
        d = self.discovery
        return (
            d.sensor("Co2", EntityCategory.NONE, "carbon_dioxide", "ppm")
            and d.sensor("Temperature", EntityCategory.NONE, "temperature", "°C")
            and d.sensor("Humidity", EntityCategory.NONE, "humidity", "%")
        )


@dataclass
class SGP30:
    """Sensirion SGP30 air quality sensor (CO2 equivalent and TVOC)."""

    discovery: Discovery
    address: str = ""
    bus: int = 1
    i2c_started: bool = False
    initialized: bool = False
    interval_ms: int = 1000
    last_ms: int = 0

    def loop(self, now_ms: int, measurement: Callable[[], "tuple[float, float]"]) -> bool:
        """Measure when due; publish once past the warm-up. Return whether it published."""
        if not self.i2c_started or not self.initialized:
            return False
        if not _due(now_ms, self.last_ms, self.interval_ms):
            return False
        self.last_ms = now_ms
        co2, tvoc = measurement()
        if self.last_ms <= _SGP30_WARMUP_MS:
            return False
        _publish(self.discovery, "co2", f"{float(co2):.2f}")
        _publish(self.discovery, "tvoc", f"{float(tvoc):.2f}")
        return True

    def send_discovery(self) -> bool:
        if not self.address:
            return True
        d = self.discovery
        return (
            d.sensor("Co2", EntityCategory.NONE, "carbon_dioxide", "ppm")
            and d.sensor("TVOC", EntityCategory.NONE, "volatile_organic_compounds", "ppb")
        )


@dataclass
class TSL2561:
    """TSL2561 ambient light sensor."""

    discovery: Discovery
    address: str = ""
    bus: int = 1
    gain: str = "auto"
    i2c_started: bool = False
    interval_ms: int = 60_000
    last_ms: int = 0

    def loop(self, now_ms: int, lux: Callable[[int, int, str], float]) -> float | None:
        """Read ``lux(address, bus, gain)``; publish a non-zero reading when due."""
        if not self.i2c_started:
            return None
        address = tsl2561_address(self.address)
        if address is None:
            return None
        if self.gain not in _TSL2561_GAINS:
            log.warning("[TSL2561] Invalid gain")
            return None
        value = lux(address, self.bus, self.gain)
        if not value:
            log.warning("[TSL2561] Sensor overloaded")
            return None
        if now_ms - self.last_ms < self.interval_ms:
            return None
        _publish(self.discovery, "tsl2561_lux", f"{value:.2f}")
        self.last_ms = now_ms
        return value

    def send_discovery(self) -> bool:
        if not self.address:
            return True
        return self.discovery.sensor("TSL2561 Lux", EntityCategory.NONE, "illuminance", "lx")