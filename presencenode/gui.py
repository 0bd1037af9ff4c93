"""Console and display reporting of node events, with status LEDs."""

from __future__ import annotations

import sys
from typing import Callable, Protocol

from .defaults import UPDATE_COMPLETE, UPDATE_STARTED
from .leds import LedController

_RESET = "\x1b[0m"


class _Fingerprint(Protocol):
    ignore: bool
    added: bool
    rm_asst: bool
    allow_query: bool
    mac: str
    id: str
    rssi: int
    newest_rssi: int
    discriminator: str
    distance: float
    ms_since_last_seen: int


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


class Gui:
    """Reports events to the console and display and drives the LEDs."""

    def __init__(
        self,
        leds: LedController | None = None,
        out: Callable[[str], object] | None = None,
        display: Callable[[str], object] | None = None,
        core_id: int = 1,
    ) -> None:
        self.leds = leds
        self.out = out or sys.stdout.write
        self.display = display or (lambda text: None)
        self.core_id = core_id

    def _write(self, line: str) -> str:
        self.out(line)
        return line

    def _device(self, f: _Fingerprint, rssi: int) -> str:
        return f"MAC: {f.mac}, ID: {f.id:<58}{rssi}dBm"

    def added(self, fingerprint: _Fingerprint) -> str | None:
        f = fingerprint
        if f.ignore:
            return None
        flag = "R" if f.rm_asst else ("Q" if f.allow_query else " ")
        return self._write(f"{self.core_id} New {flag} | {self._device(f, f.rssi)} {f.discriminator}\n")

    def removed(self, fingerprint: _Fingerprint) -> str | None:
        f = fingerprint
        if f.ignore or not f.added:
            return None
        return self._write(
            f"\x1b[38;5;236m{self.core_id} Del   | {self._device(f, f.rssi)} {f.discriminator}{_RESET}\n"
        )

    def close(self, fingerprint: _Fingerprint) -> str:
        f = fingerprint
        line = self._write(f"\x1b[32m{self.core_id} Close | {self._device(f, f.newest_rssi)}{_RESET}\n")
        self.display(f"C:{f.id}\n")
        return line

    def left(self, fingerprint: _Fingerprint) -> str:
        f = fingerprint
        line = self._write(f"\x1b[33m{self.core_id} Left  | {self._device(f, f.newest_rssi)}{_RESET}\n")
        self.display(f"L:{f.id}\n")
        return line

    def counting(self, fingerprint: _Fingerprint, added: bool) -> str:
        f = fingerprint
        colour, sign = ("36", "+1") if added else ("35", "-1")
        return self._write(
            f"\x1b[{colour}m{self.core_id} C# {sign} | {self._device(f, f.rssi)} "
            f"({f.distance:.2f}m) {f.ms_since_last_seen}ms{_RESET}\n"
        )

    def motion(self, pir: bool, radar: bool) -> str:
        line = self._write(f"{self.core_id} Motion| Pir: {_yes_no(pir)} Radar: {_yes_no(radar)}\n")
        self.display(f"Pir:{_yes_no(pir)} Radar:{_yes_no(radar)}\n")
        if self.leds is not None:
            self.leds.motion(pir, radar)
        return line

    def seen(self, in_progress: bool) -> None:
        if self.leds is not None:
            self.leds.seen(in_progress)

    def update(self, percent: int) -> str:
        if self.leds is not None:
            self.leds.update(percent)
        if percent == UPDATE_STARTED:
            self.display("Update:started\n")
            return self._write(f"{self.core_id} Update| started\n")
        if percent == UPDATE_COMPLETE:
            self.display("Update:finished\n")
            return self._write(f"{self.core_id} Update| finished\n")
        return self._write(f"{self.core_id} Update| {percent}%\n")

    def connected(self, wifi: bool, mqtt: bool) -> None:
        self.display(f"Wifi:{_yes_no(wifi)} Mqtt:{_yes_no(mqtt)}\n")

    def wifi(self, percent: int) -> None:
        if self.leds is not None:
            self.leds.wifi(percent)

    def portal(self, percent: int) -> None:
        if self.leds is not None:
            self.leds.portal(percent)

    def status(self, message: str) -> str:
        line = self._write(f"{self.core_id} Status| {message}")
        self.display(message)
        return line

    def count(self, count: int) -> None:
        if self.leds is not None:
            self.leds.count(count)

    def command(self, command: str, payload: str) -> bool:
        """Pass a command to the LEDs; False when none of them takes it."""
        return self.leds is not None and self.leds.command(command, payload)