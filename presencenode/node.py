"""The node itself: topics, telemetry, MQTT message routing and device reports."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

from .defaults import (
    CHANNEL,
    DEFAULT_ABSORPTION,
    DEFAULT_EXCLUDE,
    DEFAULT_INCLUDE,
    DEFAULT_MAX_DISTANCE,
    DEFAULT_QUERY,
    DEFAULT_TX_REF_RSSI,
)
from .mqtt import EntityCategory, slugify

log = logging.getLogger(__name__)

TELEMETRY_INTERVAL_MS = 15_000
PUBLISH_ATTEMPTS = 10
PUBLISH_PAUSE = 0.025
REPORT_PAUSE = 0.02
ROOM_SET_WILDCARD = f"{CHANNEL}/rooms/*/+/set"

# publish(topic, payload, retain) -> whether the broker accepted it
Publisher = Callable[[str, str, bool], bool]
# A command handler and whether handling it changes the published state.
CommandHandler = "tuple[Callable[[str, str], bool], bool]"


@dataclass(frozen=True)
class Topics:
    """MQTT topics derived from the room name."""

    room: str
    id: str
    rooms: str
    status: str
    telemetry: str
    set: str
    config: str


def topics_for_room(room: str) -> Topics:
    """Build every topic the node uses from its room name."""
    room_id = slugify(room)
    rooms = f"{CHANNEL}/rooms/{room_id}"
    return Topics(
        room=room,
        id=room_id,
        rooms=rooms,
        status=f"{rooms}/status",
        telemetry=f"{rooms}/telemetry",
        set=f"{rooms}/+/set",
        config=f"{CHANNEL}/settings/+/config",
    )


def parse_message_topic(topic: str) -> tuple[str, str] | None:
    """Classify a topic as ("config", id) or ("set", command); None if neither."""
    config_pos = topic.rfind("/config")
    if config_pos > 1:
        id_pos = topic.rfind("/", 0, config_pos)
        if id_pos < 0:
            return None
        return "config", topic[id_pos + 1:config_pos]
    set_pos = topic.rfind("/set")
    if set_pos > 1:
        command_pos = topic.rfind("/", 0, set_pos)
        if command_pos < 0:
            return None
        return "set", topic[command_pos + 1:set_pos]
    return None


@dataclass
class Counters:
    """Running totals reported in telemetry."""

    total_seen: int = 0
    total_fp_seen: int = 0
    total_fp_queried: int = 0
    total_fp_reported: int = 0


def _dumps(doc: Any) -> str:
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False)


class Node:
    """Publishes node state and telemetry and routes incoming MQTT messages."""

    def __init__(
        self,
        publish: Publisher,
        discovery: Any,
        topics: Topics,
        *,
        online_hooks: Sequence[Callable[[], bool]] = (),
        discovery_hooks: Sequence[Callable[[], bool]] = (),
        command_handlers: Iterable[Any] = (),
        on_config: Callable[[str, str], object] | None = None,
        on_connected: Callable[[bool, bool], object] | None = None,
        subscribe: Callable[[str], object] | None = None,
        is_connected: Callable[[], bool] | None = None,
        save: Callable[[str, str], object] | None = None,
        restart: Callable[[], object] | None = None,
        discovery_enabled: bool = True,
        publish_rooms: bool = True,
        publish_devices: bool = True,
        firmware: str | None = None,
        version: str | None = None,
        max_distance: float = DEFAULT_MAX_DISTANCE,
        absorption: float = DEFAULT_ABSORPTION,
        tx_ref_rssi: int = DEFAULT_TX_REF_RSSI,
        rx_adj_rssi: int = 0,
        query: str = DEFAULT_QUERY,
        include: str = DEFAULT_INCLUDE,
        exclude: str = DEFAULT_EXCLUDE,
        known_macs: str = "",
        known_irks: str = "",
        count_ids: str = "",
        pause: float = PUBLISH_PAUSE,
    ) -> None:
        self.publish = publish
        self.discovery = discovery
        self.topics = topics
        self.online_hooks = list(online_hooks)
        self.discovery_hooks = list(discovery_hooks)
        self.command_handlers = list(command_handlers)
        self.on_config = on_config
        self.on_connected = on_connected
        self.subscribe = subscribe
        self.is_connected = is_connected or (lambda: True)
        self.save = save
        self.restart = restart
        self.discovery_enabled = discovery_enabled
        self.publish_rooms = publish_rooms
        self.publish_devices = publish_devices
        self.firmware = firmware
        self.version = version
        self.max_distance = max_distance
        self.absorption = absorption
        self.tx_ref_rssi = tx_ref_rssi
        self.rx_adj_rssi = rx_adj_rssi
        self.query = query
        self.include = include
        self.exclude = exclude
        self.known_macs = known_macs
        self.known_irks = known_irks
        self.count_ids = count_ids
        self.pause = pause

        self.online = False
        self.sent_discovery = False
        self.last_tele_ms = 0
        self.tele_fails = 0
        self.reconnect_tries = 0

    def _pub(self, topic: str, payload: str, retain: bool = True) -> bool:
        for attempt in range(PUBLISH_ATTEMPTS):
            if self.publish(topic, payload, retain):
                return True
            if self.pause and attempt + 1 < PUBLISH_ATTEMPTS:
                time.sleep(self.pause)
        return False

    def _send_online(self) -> bool:
        rooms = self.topics.rooms
        values = (
            ("max_distance", f"{float(self.max_distance):.2f}"),
            ("absorption", f"{float(self.absorption):.2f}"),
            ("tx_ref_rssi", str(self.tx_ref_rssi)),
            ("rx_adj_rssi", str(self.rx_adj_rssi)),
            ("query", self.query),
            ("include", self.include),
            ("exclude", self.exclude),
            ("known_macs", self.known_macs),
            ("known_irks", self.known_irks),
            ("count_ids", self.count_ids),
        )
        if not self._pub(self.topics.status, "online"):
            return False
        if not all(self._pub(f"{rooms}/{suffix}", value) for suffix, value in values):
            return False
        return all(hook() for hook in self.online_hooks)

    def _send_discovery(self) -> bool:
        d = self.discovery
        if self.count_ids:
            count_ok = lambda: d.tele_sensor(  # noqa: E731
                "Count", EntityCategory.NONE, "{{ value_json.count }}", "", ""
            )
        else:
            count_ok = lambda: d.delete("sensor", "Count")  # noqa: E731
        steps: list[Callable[[], bool]] = [
            d.connectivity,
            lambda: d.tele_sensor("Uptime", EntityCategory.DIAGNOSTIC, "{{ value_json.uptime }}", "", "s"),
            lambda: d.tele_sensor("Free Mem", EntityCategory.DIAGNOSTIC, "{{ value_json.freeHeap }}", "", "bytes"),
            count_ok,
            lambda: d.button("Restart", EntityCategory.DIAGNOSTIC),
            lambda: d.number("Max Distance", EntityCategory.CONFIG),
            lambda: d.number("Absorption", EntityCategory.CONFIG),
            lambda: d.delete("switch", "Status LED"),
            lambda: d.delete("switch", "Active Scan"),
            *self.discovery_hooks,
        ]
        return all(step() for step in steps)

    def build_telemetry(self, counters: Counters, count: int, stats: Mapping[str, Any]) -> dict[str, Any]:
        """The telemetry document; zero counters are left out."""
        doc: dict[str, Any] = {
            "ip": stats.get("ip", ""),
            "uptime": int(stats.get("uptime", 0)),
        }
        if self.firmware:
            doc["firm"] = self.firmware
        doc["rssi"] = stats.get("rssi", 0)
        doc["ver"] = self.version if self.version else stats.get("sketch_md5", "")
        if self.count_ids:
            doc["count"] = count
        optional = (
            ("adverts", counters.total_seen),
            ("seen", counters.total_fp_seen),
            ("queried", counters.total_fp_queried),
            ("reported", counters.total_fp_reported),
            ("teleFails", self.tele_fails),
            ("reconnectTries", self.reconnect_tries),
        )
        doc.update((key, value) for key, value in optional if value > 0)
        free_heap = int(stats.get("free_heap", 0))
        max_heap = int(stats.get("max_alloc_heap", 0))
        doc["freeHeap"] = free_heap
        doc["maxAllocHeap"] = max_heap
        doc["memFrag"] = 100 - (max_heap * 100.0 / free_heap) if free_heap else 0.0
        doc["scanHighWater"] = stats.get("scan_high_water", 0)
        doc["reportHighWater"] = stats.get("report_high_water", 0)
        return doc

    def send_telemetry(
        self, now_ms: int, counters: Counters, count: int, stats: Mapping[str, Any]
    ) -> bool:
        """Announce online state and discovery once, then telemetry every 15 s."""
        if not self.online:
            if self._send_online():
                self.online = True
                self.reconnect_tries = 0
            else:
                log.error("Error sending status=online")

        if self.discovery_enabled and not self.sent_discovery:
            if self._send_discovery():
                self.sent_discovery = True
            else:
                log.error("Error sending discovery")

        if now_ms - self.last_tele_ms < TELEMETRY_INTERVAL_MS:
            return False
        self.last_tele_ms = now_ms

        payload = _dumps(self.build_telemetry(counters, count, stats))
        if self._pub(self.topics.telemetry, payload, retain=False):
            return True
        self.tele_fails += 1
        log.error("Error after %d tries sending telemetry (%d times since boot)", PUBLISH_ATTEMPTS, self.tele_fails)
        return False

    def on_message(self, topic: str, payload: str) -> str | None:
        """Route an incoming message; return the config id or command handled."""
        parsed = parse_message_topic(topic)
        if parsed is None:
            log.info("MQTT  | Unknown: %s: %s", topic, payload)
            return None
        kind, name = parsed
        if kind == "config":
            log.info("MQTT  | Config %s: %s", name, payload)
            if self.on_config is not None:
                self.on_config(name, payload)
            return name

        log.info("MQTT  | Set %s: %s", name, payload)
        if name == "restart":
            if self.restart is not None:
                self.restart()
        elif name in ("wifi-ssid", "wifi-password"):
            if self.save is not None:
                self.save(f"/{name}", payload)
        else:
            for handler, changes_state in self.command_handlers:
                if handler(name, payload):
                    if changes_state:
                        self.online = False
                    break
        return name

    def on_connect(self) -> list[str]:
        """Subscribe to command and config topics; return the topics subscribed."""
        wanted = [ROOM_SET_WILDCARD, self.topics.set, self.topics.config]
        if self.subscribe is not None:
            for topic in wanted:
                self.subscribe(topic)
        if self.on_connected is not None:
            self.on_connected(True, True)
        return wanted

    def on_disconnect(self) -> None:
        if self.on_connected is not None:
            self.on_connected(True, False)
        self.online = False

    def report_device(self, device_id: str, report: Mapping[str, Any] | None) -> bool:
        """Publish a device report to the room and device topics."""
        if report is None:
            return False
        payload = _dumps(dict(report))
        devices_topic = f"{CHANNEL}/devices/{device_id}/{self.topics.id}"
        to_rooms = not self.publish_rooms
        to_devices = not self.publish_devices
        for attempt in range(PUBLISH_ATTEMPTS):
            if not self.is_connected():
                return False
            if not to_rooms and self.publish(self.topics.rooms, payload, False):
                to_rooms = True
            if not to_devices and self.publish(devices_topic, payload, False):
                to_devices = True
            if to_rooms and to_devices:
                return True
            if self.pause and attempt + 1 < PUBLISH_ATTEMPTS:
                time.sleep(self.pause * REPORT_PAUSE / PUBLISH_PAUSE)
        self.tele_fails += 1
        return False