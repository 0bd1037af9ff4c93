import json

import pytest

from presencenode.node import Counters, Node, parse_message_topic, topics_for_room


class FakeDiscovery:
    def __init__(self, result=True):
        self.calls = []
        self.result = result

    def _record(self, name, *args):
        self.calls.append((name, args))
        return self.result

    def connectivity(self):
        return self._record("connectivity")

    def tele_sensor(self, *args):
        return self._record("tele_sensor", *args)

    def button(self, *args):
        return self._record("button", *args)

    def number(self, *args):
        return self._record("number", *args)

    def delete(self, *args):
        return self._record("delete", *args)


class Recorder:
    def __init__(self, ok=True):
        self.messages = []
        self.ok = ok

    def __call__(self, topic, payload, retain):
        self.messages.append((topic, payload, retain))
        return self.ok

    def topics(self):
        return [m[0] for m in self.messages]


def make_node(publish=None, **kwargs):
    publish = publish or Recorder()
    kwargs.setdefault("pause", 0)
    return Node(publish, kwargs.pop("discovery", FakeDiscovery()), topics_for_room("kitchen"), **kwargs)


STATS = {"ip": "192.0.2.10", "uptime": 42, "rssi": -60, "free_heap": 1000, "max_alloc_heap": 500}


def test_topics_for_room():
    t = topics_for_room("kitchen")
    assert t.rooms == "espresense/rooms/kitchen"
    assert t.status == "espresense/rooms/kitchen/status"
    assert t.telemetry == "espresense/rooms/kitchen/telemetry"
    assert t.set == "espresense/rooms/kitchen/+/set"
    assert t.config == "espresense/settings/+/config"


@pytest.mark.parametrize(
    "topic, expected",
    [
        ("espresense/rooms/kitchen/max_distance/set", ("set", "max_distance")),
        ("espresense/settings/phone/config", ("config", "phone")),
        ("garbage", None),
        ("/set", None),
    ],
)
def test_parse_message_topic(topic, expected):
    assert parse_message_topic(topic) == expected


def test_first_telemetry_call_sends_online_state():
    pub = Recorder()
    node = make_node(pub)
    assert node.send_telemetry(1000, Counters(), 0, STATS) is False
    assert node.online is True
    assert ("espresense/rooms/kitchen/status", "online", True) in pub.messages
    assert "espresense/rooms/kitchen/known_irks" in pub.topics()
    assert "espresense/rooms/kitchen/telemetry" not in pub.topics()


def test_online_hook_failure_keeps_offline():
    node = make_node(online_hooks=[lambda: False])
    node.send_telemetry(1000, Counters(), 0, STATS)
    assert node.online is False


def test_telemetry_published_after_interval():
    pub = Recorder()
    node = make_node(pub, version="1.0")
    assert node.send_telemetry(20000, Counters(total_seen=3), 0, STATS) is True
    tele = [m for m in pub.messages if m[0].endswith("/telemetry")]
    assert len(tele) == 1
    doc = json.loads(tele[0][1])
    assert doc["ver"] == "1.0"
    assert doc["adverts"] == 3
    assert tele[0][2] is False
    assert node.send_telemetry(25000, Counters(), 0, STATS) is False


def test_build_telemetry_omits_zero_counters_and_count():
    node = make_node()
    doc = node.build_telemetry(Counters(), 5, STATS)
    for key in ("adverts", "seen", "queried", "reported", "teleFails", "count"):
        assert key not in doc
    assert doc["freeHeap"] == 1000
    assert doc["memFrag"] == pytest.approx(50.0)


def test_build_telemetry_includes_count_with_count_ids():
    node = make_node(count_ids="apple:")
    doc = node.build_telemetry(Counters(total_fp_reported=2), 5, STATS)
    assert doc["count"] == 5
    assert doc["reported"] == 2


def test_discovery_deletes_count_without_count_ids():
    disc = FakeDiscovery()
    node = make_node(discovery=disc)
    node.send_telemetry(0, Counters(), 0, STATS)
    assert node.sent_discovery is True
    assert ("delete", ("sensor", "Count")) in disc.calls
    assert ("delete", ("switch", "Active Scan")) in disc.calls


def test_discovery_failure_retried_later():
    disc = FakeDiscovery(result=False)
    node = make_node(discovery=disc)
    node.send_telemetry(0, Counters(), 0, STATS)
    assert node.sent_discovery is False


def test_telemetry_failure_counts():
    node = make_node(Recorder(ok=False))
    assert node.send_telemetry(20000, Counters(), 0, STATS) is False
    assert node.tele_fails == 1


def test_on_message_restart_and_wifi():
    restarts = []
    saved = []
    node = make_node(restart=lambda: restarts.append(1), save=lambda p, v: saved.append((p, v)))
    assert node.on_message("espresense/rooms/kitchen/restart/set", "") == "restart"
    assert restarts == [1]
    node.on_message("espresense/rooms/kitchen/wifi-ssid/set", "home")
    assert saved == [("/wifi-ssid", "home")]


def test_on_message_handler_changes_state():
    seen = []
    handlers = [
        (lambda c, p: seen.append(("a", c)) or c == "led_1", False),
        (lambda c, p: seen.append(("b", c)) or c == "max_distance", True),
    ]
    node = make_node(command_handlers=handlers)
    node.online = True
    node.on_message("espresense/rooms/kitchen/led_1/set", "{}")
    assert node.online is True
    node.on_message("espresense/rooms/kitchen/max_distance/set", "5")
    assert node.online is False
    assert ("b", "led_1") not in seen


def test_on_message_config():
    configs = []
    node = make_node(on_config=lambda i, p: configs.append((i, p)))
    assert node.on_message("espresense/settings/phone/config", "{}") == "phone"
    assert configs == [("phone", "{}")]
    assert node.on_message("nothing", "x") is None


def test_connect_and_disconnect():
    subs = []
    states = []
    node = make_node(subscribe=subs.append, on_connected=lambda w, m: states.append((w, m)))
    node.online = True
    assert node.on_connect() == subs
    assert "espresense/rooms/kitchen/+/set" in subs
    node.on_disconnect()
    assert states == [(True, True), (True, False)]
    assert node.online is False


def test_report_device_publishes_both_topics():
    pub = Recorder()
    node = make_node(pub)
    assert node.report_device("phone", {"id": "phone", "distance": 1.5}) is True
    assert pub.topics() == ["espresense/rooms/kitchen", "espresense/devices/phone/kitchen"]
    assert json.loads(pub.messages[0][1]) == {"id": "phone", "distance": 1.5}


def test_report_device_without_report_or_connection():
    node = make_node()
    assert node.report_device("phone", None) is False
    node = make_node(is_connected=lambda: False)
    assert node.report_device("phone", {"id": "phone"}) is False


def test_report_device_failure_counts():
    node = make_node(Recorder(ok=False))
    assert node.report_device("phone", {"id": "phone"}) is False
    assert node.tele_fails == 1