import json

import httpx
import pytest

from dogewallet.rpcclient import (
    Client,
    RpcNetworkError,
    RpcParseError,
    UnknownResponseIdError,
    endpoint_to_url,
)
from dogewallet.rpcobjects import JsonRpcNotification, JsonRpcResponse

URL = "http://localhost:8070/json_rpc"


def make_client(responder):
    seen = []

    def handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responder(request)

    http = httpx.Client(transport=httpx.MockTransport(handle))
    return Client(URL, http), seen


def echo_result(result):
    def responder(request):
        body = json.loads(request.content)
        reply = {"jsonrpc": "2.0", "id": body["id"], "result": result}
        return httpx.Response(200, json=reply)

    return responder


def test_endpoint_to_url_adds_scheme_and_path():
    assert endpoint_to_url("localhost:8070") == "http://localhost:8070/json_rpc"


def test_endpoint_to_url_replaces_scheme_and_path():
    assert endpoint_to_url("https://node.example.com:81/other") == "http://node.example.com:81/json_rpc"


def test_endpoint_to_url_rejects_empty():
    with pytest.raises(ValueError):
        endpoint_to_url("  ")


def test_set_endpoint_and_set_url():
    client = Client(http_client=httpx.Client(transport=httpx.MockTransport(echo_result({}))))
    client.set_endpoint("127.0.0.1:9000")
    assert client.url == endpoint_to_url("127.0.0.1:9000")
    client.set_url("http://example.com/rpc")
    assert client.url == "http://example.com/rpc"


def test_send_request_posts_json_rpc_body():
    client, seen = make_client(echo_result({"balance": 5}))
    received = []
    request_id = client.send_request("get_balance", {"address": "abc"}, received.append)

    assert len(seen) == 1
    body = json.loads(seen[0].content)
    assert body == {"jsonrpc": "2.0", "id": request_id, "method": "get_balance", "params": {"address": "abc"}}
    assert seen[0].headers["content-type"] == "application/json-rpc"
    assert seen[0].headers["accept"] == "application/json-rpc"
    assert str(seen[0].url) == URL
    assert request_id == "0"


def test_handler_receives_result_and_ids_increase():
    client, _ = make_client(echo_result({"balance": 5}))
    received = []
    first = client.send_request("a", None, received.append)
    second = client.send_request("b", {}, received.append)
    assert first != second
    assert int(second) == int(first) + 1
    assert [r.result_as_dict() for r in received] == [{"balance": 5}, {"balance": 5}]
    assert [r.id for r in received] == [first, second]
    assert client.pending_requests == 0


def test_error_response_goes_to_handler():
    def responder(request):
        body = json.loads(request.content)
        reply = {"jsonrpc": "2.0", "id": body["id"], "error": {"code": -5, "message": "bad"}}
        return httpx.Response(200, json=reply)

    client, _ = make_client(responder)
    received = []
    client.send_request("x", {}, received.append)
    assert len(received) == 1
    assert received[0].is_error_response
    assert received[0].error_message == "bad"
    assert received[0].error_code == -5


def test_packet_signals_carry_bytes():
    client, seen = make_client(echo_result({}))
    sent, got = [], []
    client.packet_sent.connect(sent.append)
    client.packet_received.connect(got.append)
    client.send_request("m", {}, lambda r: None)
    assert sent == [seen[0].content]
    assert json.loads(got[0])["result"] == {}


def test_http_error_status_raises_network_error():
    client, _ = make_client(lambda request: httpx.Response(500))
    with pytest.raises(RpcNetworkError):
        client.send_request("m", {}, lambda r: None)
    assert client.pending_requests == 0


def test_transport_failure_raises_network_error():
    def responder(request):
        raise httpx.ConnectError("refused", request=request)

    client, _ = make_client(responder)
    with pytest.raises(RpcNetworkError):
        client.send_request("m", {}, lambda r: None)
    assert client.pending_requests == 0


def test_send_without_url_raises():
    client = Client(http_client=httpx.Client(transport=httpx.MockTransport(echo_result({}))))
    with pytest.raises(ValueError):
        client.send_request("m", {}, lambda r: None)


def test_process_reply_unknown_id():
    client, _ = make_client(echo_result({}))
    with pytest.raises(UnknownResponseIdError) as info:
        client.process_reply(b'{"jsonrpc":"2.0","id":"77","result":{}}')
    assert info.value.response_id == "77"


@pytest.mark.parametrize(
    "data",
    [b"not json", b"[1, 2]", b'{"jsonrpc":"1.0","id":"1","result":{}}', b'{"jsonrpc":"2.0"}'],
)
def test_process_reply_parse_errors(data):
    client, _ = make_client(echo_result({}))
    with pytest.raises(RpcParseError):
        client.process_reply(data)


def test_process_reply_notification_is_not_dispatched():
    client, _ = make_client(echo_result({}))
    obj = client.process_reply(b'{"jsonrpc":"2.0","method":"tick","params":{"n":1}}')
    assert isinstance(obj, JsonRpcNotification)
    assert obj.params_as_dict() == {"n": 1}


def test_mismatched_reply_id_raises_and_clears_pending():
    def responder(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": "zzz", "result": {}})

    client, _ = make_client(responder)
    with pytest.raises(UnknownResponseIdError):
        client.send_request("m", {}, lambda r: None)
    assert client.pending_requests == 0


def test_process_reply_returns_response():
    client, _ = make_client(echo_result({}))
    handled = []
    client._insert_response_handler("5", handled.append)
    obj = client.process_reply(b'{"jsonrpc":"2.0","id":"5","result":[1]}')
    assert isinstance(obj, JsonRpcResponse)
    assert handled == [obj]
    assert obj.result_as_list() == [1]