import json

import pytest

from dogewallet.stratum import (
    Job,
    JobSlot,
    StratumClient,
    difficulty_for_target,
    encode_nonce,
    parse_target,
)


class FakeTransport:
    def __init__(self):
        self.connects = []
        self.written = []
        self.disconnects = 0
        self.aborts = 0

    def connect(self, host, port):
        self.connects.append((host, port))

    def write(self, data):
        self.written.append(data)

    def disconnect(self):
        self.disconnects += 1

    def abort(self):
        self.aborts += 1

    def messages(self):
        return [json.loads(chunk) for chunk in self.written]


def make_client(difficulty=500):
    slot = JobSlot()
    transport = FakeTransport()
    password = "password"
    client = StratumClient(slot, "pool.example.com", 3333, difficulty, "wallet", password, transport)
    return client, slot, transport


def line(obj):
    return json.dumps(obj).encode("utf-8") + b"\n"


LOGIN_OK = {
    "id": "1",
    "jsonrpc": "2.0",
    "result": {
        "id": "sess",
        "status": "OK",
        "job": {"job_id": "j1", "blob": "0102", "target": "ffffff00"},
    },
}


def logged_in():
    client, slot, transport = make_client()
    client.start()
    client.connected()
    client.feed(line(LOGIN_OK))
    return client, slot, transport


def test_parse_target_is_little_endian():
    assert parse_target("01000000") == 1
    assert parse_target("ff") == 0


@pytest.mark.parametrize("nonce", [0, 1, 255, 65536, 0xFFFFFFFF])
def test_encode_nonce_round_trip(nonce):
    encoded = encode_nonce(nonce)
    assert len(encoded) == 8
    assert parse_target(encoded) == nonce


def test_difficulty_for_target():
    assert difficulty_for_target(0) == 0
    assert difficulty_for_target(0xFFFFFFFF) == 1
    assert difficulty_for_target(1) == 0xFFFFFFFF


def test_job_slot_nonce_wraps_and_resets():
    slot = JobSlot()
    assert slot.next_nonce() == 1
    assert slot.next_nonce() == 2
    slot.replace(Job("a", 1, b""))
    assert slot.nonce == 0
    assert slot.job == Job("a", 1, b"")
    slot.clear()
    assert slot.job is None


def test_start_connects_to_pool():
    client, _, transport = make_client()
    client.start()
    assert transport.connects == [("pool.example.com", 3333)]


def test_login_request_wire_bytes():
    client, _, transport = make_client()
    client.start()
    client.connected()
    assert transport.written == [
        b'{"id":"1","jsonrpc":"2.0","method":"login",'
        b'"params":{"agent":"Miner","login":"wallet.500","pass":"password"}}\n'
    ]
    assert client.response_timer_active
    assert client.pending_requests == 1


def test_login_without_difficulty_has_plain_login():
    client, _, transport = make_client(difficulty=0)
    client.start()
    client.connected()
    assert transport.messages()[0]["params"]["login"] == "wallet"


def test_nothing_sent_before_connected():
    client, slot, transport = make_client()
    slot.replace(Job("j", 1, b""))
    client.share_found("j", 1, b"\x00")
    assert transport.written == []


def test_login_success_installs_job():
    client, slot, transport = make_client()
    started, difficulties = [], []
    client.started.connect(lambda: started.append(True))
    client.difficulty_changed.connect(difficulties.append)
    client.start()
    client.connected()
    client.feed(line(LOGIN_OK))
    assert started == [True]
    assert client.session_id == "sess"
    assert slot.job == Job("j1", parse_target("ffffff00"), b"\x01\x02")
    assert difficulties == [client.difficulty]
    assert client.difficulty == difficulty_for_target(parse_target("ffffff00"))
    assert not client.response_timer_active
    assert client.pending_requests == 0


def test_login_error_schedules_reconnect():
    client, slot, _ = make_client()
    errors = []
    client.errored.connect(lambda: errors.append(True))
    client.start()
    client.connected()
    client.feed(line({"id": "1", "error": {"code": -1, "message": "bad"}}))
    assert errors == [True]
    assert client.connection_error_count == 1
    assert client.last_connection_error_time is not None
    assert client.reconnect_timer_active
    assert slot.job is None


def test_login_bad_status_counts_error():
    client, _, _ = make_client()
    client.start()
    client.connected()
    client.feed(line({"id": "1", "result": {"status": "DENIED"}}))
    assert client.connection_error_count == 1
    assert client.reconnect_timer_active
    assert client.session_id == ""


def test_job_notification_replaces_job_and_resets_nonce():
    client, slot, _ = logged_in()
    slot.next_nonce()
    client.feed(line({"method": "job", "params": {"job_id": "j2", "blob": "ff", "target": "01000000"}}))
    assert slot.job == Job("j2", 1, b"\xff")
    assert slot.nonce == 0


def test_share_found_sends_submit():
    client, _, transport = logged_in()
    client.share_found("j1", 1, b"\xab\xcd")
    submit = transport.messages()[-1]
    assert submit["method"] == "submit"
    assert submit["id"] == "2"
    assert submit["params"] == {
        "id": "sess",
        "job_id": "j1",
        "nonce": encode_nonce(1),
        "result": "abcd",
    }


def test_stale_share_is_ignored():
    client, _, transport = logged_in()
    count = len(transport.written)
    client.share_found("old", 1, b"\x00")
    assert len(transport.written) == count


def test_submit_responses_count_shares():
    client, slot, _ = logged_in()
    good = []
    client.good_share_count_changed.connect(good.append)
    client.share_found("j1", 1, b"\x00")
    client.feed(line({"id": "2", "result": {"status": "OK"}}))
    assert good == [1]
    client.share_found("j1", 2, b"\x00")
    client.feed(line({"id": "3", "error": {"code": -1, "message": "low"}}))
    assert client.good_share_count == 1
    assert client.bad_share_count == 1
    assert client.reconnect_timer_active
    assert slot.job is None


def test_unknown_response_id_is_ignored():
    client, _, _ = logged_in()
    client.feed(line({"id": "99", "result": {"status": "OK"}}))
    client.feed(line({"id": 2, "result": {}}))
    assert client.good_share_count == 0
    assert client.bad_share_count == 0


def test_partial_lines_are_buffered():
    client, _, _ = make_client()
    client.start()
    client.connected()
    data = line(LOGIN_OK)
    client.feed(data[:10])
    assert client.session_id == ""
    client.feed(data[10:])
    assert client.session_id == "sess"


def test_invalid_json_line_is_skipped():
    client, _, _ = make_client()
    client.start()
    client.connected()
    client.feed(b"not json\n" + line(LOGIN_OK))
    assert client.session_id == "sess"


def test_response_timeout_counts_error_and_reconnects():
    client, _, _ = make_client()
    client.start()
    client.connected()
    client.response_timed_out()
    assert client.connection_error_count == 1
    assert not client.response_timer_active
    assert client.reconnect_timer_active
    assert client.pending_requests == 0


def test_socket_error_then_reconnect_due_restarts():
    client, _, transport = make_client()
    client.start()
    client.connected()
    client.socket_error("refused")
    assert client.connection_error_count == 1
    assert not client.is_connected
    client.reconnect_due()
    assert transport.aborts == 1
    assert len(transport.connects) == 2
    assert not client.reconnect_timer_active


def test_start_twice_while_connected_raises():
    client, _, _ = make_client()
    client.start()
    client.connected()
    with pytest.raises(RuntimeError):
        client.start()


def test_stop_clears_state():
    client, slot, transport = logged_in()
    stopped = []
    client.stopped.connect(lambda: stopped.append(True))
    client.stop()
    assert stopped == [True]
    assert transport.disconnects == 1
    assert slot.job is None
    assert client.session_id == ""
    assert client.difficulty == 0
    assert not client.is_connected