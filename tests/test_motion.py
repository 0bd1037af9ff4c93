import pytest

from presencenode.motion import Motion, MotionInput, PinType
from presencenode.mqtt import DeviceInfo, Discovery

ROOMS = "espresense/rooms/kitchen"


class Recorder:
    def __init__(self, accept=True):
        self.accept = accept
        self.messages = []

    def __call__(self, topic, payload, qos, retain):
        self.messages.append((topic, payload))
        return self.accept


def make_discovery(recorder):
    device = DeviceInfo(
        room="Kitchen", chip_id=0xABCDEF, mac="02:00:00:00:00:01",
        local_ip="192.0.2.10", chip_model="ESP32",
    )
    return Discovery(recorder, device, ROOMS, attempts=1, pause=0)


@pytest.fixture
def recorder():
    return Recorder()


def test_pin_type_levels_drive_detection():
    assert PinType.PULLUP.detected_level == 1
    assert PinType.PULLDOWN_INVERTED.detected_level == 0
    assert PinType.FLOATING_INVERTED.inverted is True
    sensor = MotionInput(pin=4, pin_type=PinType.PULLDOWN_INVERTED, timeout=0)
    assert sensor.sample(0, 1000) is True
    assert sensor.sample(1, 1001) is False


def test_disabled_input_never_changes():
    sensor = MotionInput(pin=-1)
    assert sensor.sample(1, 1000) is None
    assert sensor.value is None


def test_sample_debounce():
    sensor = MotionInput(pin=4, timeout=0.5)
    assert sensor.sample(1, 10_000) is True
    assert sensor.sample(0, 10_200) is None
    assert sensor.sample(0, 10_600) is False
    assert sensor.sample(0, 11_000) is None


def test_sample_inverted():
    sensor = MotionInput(pin=4, pin_type=PinType.PULLUP_INVERTED, timeout=0)
    assert sensor.sample(0, 5000) is True
    assert sensor.sample(1, 5001) is False


def test_loop_publishes_and_notifies(recorder):
    calls = []
    motion = Motion(make_discovery(recorder), pir=MotionInput(pin=4, timeout=0),
                    on_motion=lambda pir, radar: calls.append((pir, radar)))
    motion.loop(10_000, pir_level=1)
    assert recorder.messages == [(ROOMS + "/pir", "ON"), (ROOMS + "/motion", "ON")]
    assert calls == [(True, False)]


def test_loop_reports_cleared(recorder):
    motion = Motion(make_discovery(recorder), radar=MotionInput(pin=5, timeout=0))
    motion.loop(10_000, radar_level=1)
    recorder.messages.clear()
    motion.loop(10_001, radar_level=0)
    assert recorder.messages == [(ROOMS + "/radar", "OFF"), (ROOMS + "/motion", "OFF")]
    motion.loop(10_002, radar_level=0)
    assert len(recorder.messages) == 2


def test_first_loop_reports_motion_off(recorder):
    motion = Motion(make_discovery(recorder))
    motion.loop(10_000)
    assert recorder.messages == [(ROOMS + "/motion", "OFF")]


def test_command_sets_timeout_and_saves(recorder):
    saved = []
    motion = Motion(make_discovery(recorder), save=lambda key, value: saved.append((key, value)))
    assert motion.command("pir_timeout", "3") is True
    assert motion.pir.timeout == 3
    assert saved == [("/pir_timeout", "3")]
    assert motion.command("radar_timeout", "7") is True
    assert motion.radar.timeout == 7


def test_command_non_numeric_is_zero(recorder):
    motion = Motion(make_discovery(recorder))
    motion.command("pir_timeout", "abc")
    assert motion.pir.timeout == 0


def test_command_unknown(recorder):
    motion = Motion(make_discovery(recorder))
    assert motion.command("restart", "") is False


def test_send_online_once(recorder):
    motion = Motion(make_discovery(recorder))
    assert motion.send_online() is True
    assert recorder.messages == [(ROOMS + "/pir_timeout", "0.50"), (ROOMS + "/radar_timeout", "0.50")]
    assert motion.send_online() is True
    assert len(recorder.messages) == 2


def test_send_online_failure():
    motion = Motion(make_discovery(Recorder(accept=False)))
    assert motion.send_online() is False
    assert motion.online is False


def test_send_discovery_disabled(recorder):
    motion = Motion(make_discovery(recorder))
    assert motion.send_discovery() is True
    assert recorder.messages == []


def test_send_discovery_pir(recorder):
    motion = Motion(make_discovery(recorder), pir=MotionInput(pin=4))
    assert motion.send_discovery() is True
    topics = [t for t, _ in recorder.messages]
    assert topics[0].startswith("homeassistant/number/") and topics[0].endswith("/pir_timeout/config")
    assert topics[1].startswith("homeassistant/binary_sensor/") and topics[1].endswith("/motion/config")


def test_serial_report(recorder):
    motion = Motion(make_discovery(recorder), radar=MotionInput(pin=5))
    assert motion.serial_report() == "PIR Sensor:   disabled\nRadar Sensor: enabled"