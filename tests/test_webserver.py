import json
from dataclasses import dataclass, field

from presencenode.webserver import WebState


@dataclass
class Config:
    id: str
    alias: str
    name: str
    cal_rssi: int


@dataclass
class Device:
    visible: bool
    data: dict = field(default_factory=dict)

    def fill(self):
        return self.data


def test_serialize_info_has_room():
    assert WebState(room="kitchen").serialize_info() == {"room": "kitchen"}


def test_state_when_not_enrolling_has_no_remaining():
    state = WebState(enrolling=False).serialize_state(1000)
    assert state == {"state": {"enrolling": False}}


def test_state_when_enrolling_reports_remaining():
    web = WebState(enrolling=True, enrolling_end_ms=5000)
    assert web.serialize_state(2000) == {"state": {"enrolling": True, "remaining_ms": 3000}}


def test_serialize_configs_uses_rssi_key():
    configs = [Config("phone-a", "alias-a", "Phone", -60), Config("tag-b", "", "Tag", -70)]
    result = WebState().serialize_configs(configs)
    assert result["configs"][0] == {"id": "phone-a", "alias": "alias-a", "name": "Phone", "rss@1m": -60}
    assert [c["id"] for c in result["configs"]] == ["phone-a", "tag-b"]


def test_serialize_devices_skips_invisible():
    devices = [Device(True, {"id": "a"}), Device(False, {"id": "b"}), Device(True, {"id": "c"})]
    result = WebState().serialize_devices(devices)
    assert result == {"devices": [{"id": "a"}, {"id": "c"}]}


def test_serve_json_plain_url_only_info():
    status, body = WebState(room="hall").serve_json("/json", [Config("x", "", "", 0)], [Device(True, {"id": "a"})])
    assert status == 200
    assert json.loads(body) == {"room": "hall"}


def test_serve_json_devices():
    status, body = WebState(room="hall").serve_json("/json/devices", devices=[Device(True, {"id": "a"})])
    assert status == 200
    assert json.loads(body) == {"room": "hall", "devices": [{"id": "a"}]}


def test_serve_json_configs():
    status, body = WebState(room="hall").serve_json("/json/configs", configs=[Config("x", "y", "z", -59)])
    assert json.loads(body)["configs"] == [{"id": "x", "alias": "y", "name": "z", "rss@1m": -59}]


def test_serve_json_keyword_at_start_is_ignored():
    _, body = WebState(room="hall").serve_json("devices", devices=[Device(True, {"id": "a"})])
    assert "devices" not in json.loads(body)


def test_serve_json_is_compact():
    _, body = WebState(room="hall").serve_json("/json")
    assert body == '{"room":"hall"}'


def test_serve_json_can_be_called_repeatedly():
    web = WebState(room="hall")
    assert web.serve_json("/json")[0] == 200
    assert web.serve_json("/json")[0] == 200


def test_ws_document_has_state_and_info():
    web = WebState(room="den", enrolling=True, enrolling_end_ms=900)
    assert json.loads(web.ws_document(400)) == {
        "state": {"enrolling": True, "remaining_ms": 500},
        "room": "den",
    }


def test_ws_message_invokes_command():
    calls = []
    web = WebState(on_command=lambda c, p: calls.append((c, p)))
    assert web.handle_ws_message('{"command":"enroll","payload":"phone"}') is True
    assert calls == [("enroll", "phone")]


def test_ws_message_non_string_payload_rendered_as_json():
    calls = []
    web = WebState(on_command=lambda c, p: calls.append((c, p)))
    assert web.handle_ws_message('{"command":"enroll","payload":{"a":1}}')
    assert calls == [("enroll", '{"a":1}')]


def test_ws_message_invalid_json_ignored():
    calls = []
    web = WebState(on_command=lambda c, p: calls.append((c, p)))
    assert web.handle_ws_message("{not json") is False
    assert calls == []


def test_ws_message_not_object_ignored():
    calls = []
    web = WebState(on_command=lambda c, p: calls.append((c, p)))
    assert web.handle_ws_message("[1, 2]") is False
    assert calls == []


def test_ws_message_missing_payload_ignored():
    calls = []
    web = WebState(on_command=lambda c, p: calls.append((c, p)))
    assert web.handle_ws_message('{"command":"enroll"}') is False
    assert calls == []