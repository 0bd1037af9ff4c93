"""JSON documents served over HTTP and WebSocket for the web UI."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Protocol

log = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429
OK = 200


class _DeviceConfig(Protocol):
    id: str
    alias: str
    name: str
    cal_rssi: int


class _Device(Protocol):
    visible: bool

    def fill(self) -> Mapping[str, Any]: ...


def _dumps(doc: Any) -> str:
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False)


def _as_text(value: Any) -> str:
    """Render a JSON value as text: strings as they are, anything else as JSON."""
    return value if isinstance(value, str) else _dumps(value)


@dataclass
class WebState:
    """Node state exposed to the web UI and commands coming back from it."""

    room: str = ""
    enrolling: bool = False
    enrolling_end_ms: int = 0
    on_command: Callable[[str, str], object] | None = None
    _serving: bool = field(default=False, repr=False)

    def serialize_info(self) -> dict[str, Any]:
        return {"room": self.room}

    def serialize_state(self, now_ms: int) -> dict[str, Any]:
        """The ``state`` object; carries the remaining time while enrolling."""
        node: dict[str, Any] = {"enrolling": self.enrolling}
        if self.enrolling:
            node["remaining_ms"] = self.enrolling_end_ms - now_ms
        return {"state": node}

    def serialize_configs(self, configs: Iterable[_DeviceConfig]) -> dict[str, Any]:
        return {
            "configs": [
                {"id": c.id, "alias": c.alias, "name": c.name, "rss@1m": c.cal_rssi}
                for c in configs
            ]
        }

    def serialize_devices(self, devices: Iterable[_Device]) -> dict[str, Any]:
        """Visible devices only, each as the device describes itself."""
        return {"devices": [dict(d.fill()) for d in devices if d.visible]}

    def serve_json(
        self,
        url: str,
        configs: Iterable[_DeviceConfig] = (),
        devices: Iterable[_Device] = (),
    ) -> tuple[int, str]:
        """Answer a GET on a JSON URL with (status, body)."""
        if self._serving:
            return TOO_MANY_REQUESTS, "Too Many Requests"
        self._serving = True
        try:
            root = self.serialize_info()
            if url.find("configs") > 0:
                root.update(self.serialize_configs(configs))
            elif url.find("devices") > 0:
                root.update(self.serialize_devices(devices))
            return OK, _dumps(root)
        finally:
            self._serving = False

    def ws_document(self, now_ms: int) -> str:
        """The message pushed to WebSocket clients: state followed by info."""
        root = self.serialize_state(now_ms)
        root.update(self.serialize_info())
        return _dumps(root)

    def handle_ws_message(self, text: str | bytes) -> bool:
        """Pass a ``{"command": ..., "payload": ...}`` message on; False if it is not one."""
        try:
            root = json.loads(text)
        except (ValueError, UnicodeDecodeError) as exc:
            log.debug("ignoring WebSocket message: %s", exc)
            return False
        if not isinstance(root, dict):
            return False
        if "command" not in root or "payload" not in root:
            return False
        if self.on_command is not None:
            self.on_command(_as_text(root["command"]), _as_text(root["payload"]))
        return True