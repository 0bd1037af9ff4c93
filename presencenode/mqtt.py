"""MQTT publishing with retries and Home Assistant discovery messages."""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .defaults import CHANNEL

log = logging.getLogger(__name__)

# publish(topic, payload, qos, retain) -> True when the client accepted the message.
Publisher = Callable[[str, str, int, bool], bool]


class EntityCategory(str, Enum):
    """Home Assistant entity categories; NONE leaves the category out."""

    DIAGNOSTIC = "diagnostic"
    CONFIG = "config"
    NONE = ""


def _text(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def slugify(text: str) -> str:
    """Lower-case text with every run of other characters turned into '_'."""
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def publish_with_retry(
    publish: Publisher,
    topic: str,
    payload: str,
    retain: bool = False,
    qos: int = 0,
    attempts: int = 10,
    pause: float = 0.025,
) -> bool:
    """Try to publish up to ``attempts`` times, pausing after each failure."""
    for _ in range(attempts):
        if publish(topic, payload, qos, retain):
            return True
        if pause:
            time.sleep(pause)
    return False


@dataclass(frozen=True)
class DeviceInfo:
    """Identity of this node as shown in discovery messages."""

    room: str
    chip_id: int
    mac: str
    local_ip: str
    chip_model: str
    version: str | None = None
    firmware: str | None = None

    @property
    def base_id(self) -> str:
        return f"espresense_{self.chip_id:06x}"


def _dump(doc: dict) -> str:
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False)


class Discovery:
    """Builds and publishes Home Assistant discovery documents."""

    def __init__(
        self,
        publish: Publisher,
        device: DeviceInfo,
        rooms_topic: str,
        attempts: int = 10,
        pause: float = 0.025,
    ) -> None:
        self.publish = publish
        self.device = device
        self.rooms_topic = rooms_topic
        self.attempts = attempts
        self.pause = pause

    def _send(self, topic: str, payload: str, retain: bool = True) -> bool:
        return publish_with_retry(
            self.publish, topic, payload, retain=retain, qos=0,
            attempts=self.attempts, pause=self.pause,
        )

    def _config_topic(self, domain: str, slug: str) -> str:
        return f"homeassistant/{domain}/{self.device.base_id}/{slug}/config"

    def common(self) -> dict:
        """Return the device block shared by every discovery document."""
        d = self.device
        dev: dict[str, Any] = {
            "ids": [d.base_id],
            "cns": [["mac", d.mac]],
            "name": f"ESPresense {d.room}",
            "sa": d.room,
        }
        if d.version is not None:
            dev["sw"] = d.version
        if d.firmware is not None:
            dev["mf"] = f"ESPresense ({d.firmware})"
        dev["cu"] = f"http://{d.local_ip}"
        dev["mdl"] = d.chip_model
        return {"dev": dev}

    def _entity(self, name: str) -> tuple[str, dict]:
        slug = slugify(name)
        doc = self.common()
        doc["~"] = self.rooms_topic
        doc["name"] = f"ESPresense {self.device.room} {name}"
        doc["uniq_id"] = f"{self.device.base_id}_{slug}"
        return slug, doc

    def connectivity(self) -> bool:
        doc = self.common()
        doc["~"] = self.rooms_topic
        doc["name"] = f"ESPresense {self.device.room}"
        doc["uniq_id"] = f"{self.device.base_id}_connectivity"
        doc["json_attr_t"] = "~/telemetry"
        doc["stat_t"] = "~/status"
        doc["dev_cla"] = "connectivity"
        doc["pl_on"] = "online"
        doc["pl_off"] = "offline"
        return self._send(self._config_topic("binary_sensor", "connectivity"), _dump(doc))

    def tele_binary_sensor(self, name, entity_category, template, device_class="") -> bool:
        slug, doc = self._entity(name)
        doc["avty_t"] = "~/status"
        doc["stat_t"] = "~/telemetry"
        doc["value_template"] = template
        if _text(entity_category):
            doc["entity_category"] = _text(entity_category)
        if device_class:
            doc["dev_cla"] = device_class
        return self._send(self._config_topic("binary_sensor", slug), _dump(doc))

    def tele_sensor(self, name, entity_category, template, device_class="", units="") -> bool:
        slug, doc = self._entity(name)
        doc["avty_t"] = "~/status"
        doc["stat_t"] = "~/telemetry"
        doc["value_template"] = template
        if _text(entity_category):
            doc["entity_category"] = _text(entity_category)
        if units:
            doc["unit_of_meas"] = units
        if device_class:
            doc["dev_cla"] = device_class
        return self._send(self._config_topic("sensor", slug), _dump(doc))

    def sensor(self, name, entity_category, device_class="", units="", force_update=False) -> bool:
        slug, doc = self._entity(name)
        doc["avty_t"] = "~/status"
        doc["stat_t"] = f"~/{slug}"
        if _text(entity_category):
            doc["entity_category"] = _text(entity_category)
        if units:
            doc["unit_of_meas"] = units
        if device_class:
            doc["dev_cla"] = device_class
        doc["frc_upd"] = bool(force_update)
        return self._send(self._config_topic("sensor", slug), _dump(doc))

    def binary_sensor(self, name, entity_category, device_class="") -> bool:
        slug, doc = self._entity(name)
        doc["avty_t"] = "~/status"
        doc["stat_t"] = f"~/{slug}"
        if _text(entity_category):
            doc["entity_category"] = _text(entity_category)
        if device_class:
            doc["dev_cla"] = device_class
        return self._send(self._config_topic("binary_sensor", slug), _dump(doc))

    def button(self, name, entity_category) -> bool:
        slug, doc = self._entity(name)
        doc["avty_t"] = "~/status"
        doc["stat_t"] = f"~/{slug}"
        doc["cmd_t"] = f"~/{slug}/set"
        if _text(entity_category):
            doc["entity_category"] = _text(entity_category)
        return self._send(self._config_topic("button", slug), _dump(doc))

    def switch(self, name, entity_category) -> bool:
        slug, doc = self._entity(name)
        doc["avty_t"] = "~/status"
        doc["stat_t"] = f"~/{slug}"
        doc["cmd_t"] = f"~/{slug}/set"
        doc["entity_category"] = _text(entity_category)
        return self._send(self._config_topic("switch", slug), _dump(doc))

    def number(self, name, entity_category) -> bool:
        slug, doc = self._entity(name)
        doc["avty_t"] = "~/status"
        doc["stat_t"] = f"~/{slug}"
        doc["cmd_t"] = f"~/{slug}/set"
        doc["step"] = "0.1"
        if _text(entity_category):
            doc["entity_category"] = _text(entity_category)
        return self._send(self._config_topic("number", slug), _dump(doc))

    def light(self, name, entity_category, rgb) -> bool:
        slug, doc = self._entity(name)
        doc["schema"] = "json"
        doc["stat_t"] = f"~/{slug}"
        doc["cmd_t"] = f"~/{slug}/set"
        doc["brightness"] = True
        doc["rgb"] = bool(rgb)
        if _text(entity_category):
            doc["entity_category"] = _text(entity_category)
        return self._send(self._config_topic("light", slug), _dump(doc))

    def delete(self, domain, name) -> bool:
        """Remove a previously announced entity by publishing an empty config."""
        return self._send(self._config_topic(domain, slugify(name)), "", retain=False)

    def alias(self, alias, id, name="") -> bool:
        """Publish a settings entry mapping ``alias`` to a device id."""
        log.info("Setting %s->%s", alias, id)
        payload = _dump({"id": id, "name": name})
        return self._send(f"{CHANNEL}/settings/{alias}/config", payload)