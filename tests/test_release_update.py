import io

import pytest

from presencenode.release_update import (
    HttpReleaseUpdate,
    MemoryFlasher,
    UpdateErrorCode,
    UpdateResult,
    error_message,
)


def make(capacity=1024, **kwargs):
    return HttpReleaseUpdate(flasher=MemoryFlasher(capacity), **kwargs)


@pytest.mark.parametrize(
    "code,text",
    [
        (UpdateErrorCode.TOO_LESS_SPACE, "Not Enough space"),
        (UpdateErrorCode.SERVER_FILE_NOT_FOUND, "File Not Found (404)"),
        (UpdateErrorCode.SERVER_FORBIDDEN, "Forbidden (403)"),
        (UpdateErrorCode.NO_PARTITION, "Partition Could Not be Found"),
        (0, ""),
        (-200, ""),
    ],
)
def test_error_message_table(code, text):
    assert error_message(code) == text


def test_error_message_ranges():
    assert error_message(-5).startswith("HTTP error: ")
    assert error_message(3).startswith("Update error: ")


def test_not_modified_is_no_update():
    up = make()
    assert up.handle_response(304, -1, None) is UpdateResult.NO_UPDATES
    assert up.last_error == 0
    assert up.last_error_string() == ""


@pytest.mark.parametrize(
    "status,code",
    [
        (404, UpdateErrorCode.SERVER_FILE_NOT_FOUND),
        (403, UpdateErrorCode.SERVER_FORBIDDEN),
        (500, UpdateErrorCode.SERVER_WRONG_HTTP_CODE),
    ],
)
def test_http_status_errors(status, code):
    up = make()
    assert up.handle_response(status, -1, None) is UpdateResult.FAILED
    assert up.last_error == code
    assert up.last_error_string() == error_message(code)


def test_transport_error_keeps_code():
    up = make()
    assert up.handle_response(-1, -1, None) is UpdateResult.FAILED
    assert up.last_error == -1
    assert up.last_error_string().startswith("HTTP error: ")


def test_missing_size():
    up = make()
    assert up.handle_response(200, 0, io.BytesIO()) is UpdateResult.FAILED
    assert up.last_error == UpdateErrorCode.SERVER_NOT_REPORT_SIZE


def test_too_large_image():
    up = make(capacity=10)
    assert up.handle_response(200, 11, io.BytesIO(b"x" * 11)) is UpdateResult.FAILED
    assert up.last_error == UpdateErrorCode.TOO_LESS_SPACE


def test_no_partition():
    up = make(capacity=0)
    assert up.handle_response(200, 5, io.BytesIO(b"abcde")) is UpdateResult.FAILED
    assert up.last_error == UpdateErrorCode.NO_PARTITION


def test_successful_flash_calls_hooks_and_restarts():
    events = []
    up = make(restart=lambda: events.append("restart"))
    up.on_start = lambda: events.append("start")
    up.on_end = lambda ok: events.append(("end", ok))
    progress = []
    up.on_progress = lambda done, total: progress.append((done, total))
    image = bytes(range(200))
    assert up.handle_response(200, len(image), io.BytesIO(image)) is UpdateResult.OK
    assert bytes(up.flasher.data) == image
    assert events == ["start", ("end", True), "restart"]
    assert progress[0] == (0, len(image))
    assert progress[-1] == (len(image), len(image))


def test_no_restart_when_disabled():
    events = []
    up = make(restart=lambda: events.append("restart"))
    up.reboot_on_update = False
    assert up.handle_response(200, 3, io.BytesIO(b"abc")) is UpdateResult.OK
    assert events == []


def test_short_stream_fails():
    ends = []
    up = make()
    up.on_end = ends.append
    assert up.handle_response(200, 10, io.BytesIO(b"abc")) is UpdateResult.FAILED
    assert ends == [False]
    assert up.last_error > 0
    assert up.last_error_string().startswith("Update error: ")


def test_update_uses_fetch_and_closes_stream():
    calls = []
    body = io.BytesIO(b"firmware")

    def fetch(url, timeout_ms, user_agent):
        calls.append((url, timeout_ms, user_agent))
        return 200, 8, body

    up = make(fetch=fetch, version="1.2.3")
    up.reboot_on_update = False
    assert up.update("http://updates.example.com/fw.bin") is UpdateResult.OK
    assert calls == [("http://updates.example.com/fw.bin", 8000, "ESPresense/1.2.3")]
    assert body.closed


def test_default_user_agent():
    assert make().user_agent == "ESPresense/0.0"