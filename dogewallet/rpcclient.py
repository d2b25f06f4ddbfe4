"""A JSON-RPC 2.0 client that posts requests over HTTP and dispatches replies."""

from __future__ import annotations

import itertools
import json
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from dogewallet.events import Signal
from dogewallet.rpcobjects import (
    JsonRpcObject,
    JsonRpcObjectError,
    JsonRpcRequest,
    JsonRpcResponse,
    create_json_rpc_object,
)

DEFAULT_RPC_PATH = "/json_rpc"
JSON_CONTENT_TYPE = "application/json-rpc"

ResponseHandler = Callable[[JsonRpcResponse], object]


class RpcClientError(Exception):
    """Base class for errors reported by the client."""


class RpcNetworkError(RpcClientError):
    """The HTTP exchange failed."""


class RpcParseError(RpcClientError):
    """The reply is not a usable JSON-RPC document."""


class UnknownResponseIdError(RpcClientError):
    """A response arrived for an id that has no pending handler."""

    def __init__(self, response_id: str) -> None:
        super().__init__(f"cannot find handler for id '{response_id}'")
        self.response_id = response_id


def endpoint_to_url(endpoint: str) -> str:
    """Turn ``host:port`` (or any URL) into the plain-HTTP JSON-RPC URL."""
    text = endpoint.strip()
    if not text:
        raise ValueError("endpoint must not be empty")
    if "://" not in text:
        text = "http://" + text
    parts = urlsplit(text)
    if not parts.netloc:
        raise ValueError(f"endpoint has no host: {endpoint!r}")
    return urlunsplit(("http", parts.netloc, DEFAULT_RPC_PATH, parts.query, parts.fragment))


class Client:
    """Sends JSON-RPC requests and routes each response to its handler.

    Signals: ``packet_sent`` and ``packet_received`` carry the raw bytes.
    """

    def __init__(self, url: Optional[str] = None, http_client: Optional[httpx.Client] = None) -> None:
        self._url: str = url or ""
        self._owns_http = http_client is None
        self._http = http_client if http_client is not None else httpx.Client()
        self._handlers: Dict[str, ResponseHandler] = {}
        self._ids = itertools.count()
        self.packet_sent = Signal()
        self.packet_received = Signal()

    @property
    def url(self) -> str:
        return self._url

    def set_url(self, url: str) -> None:
        """Use ``url`` exactly as given."""
        self._url = url

    def set_endpoint(self, endpoint: str) -> None:
        """Use the JSON-RPC URL derived from ``host:port``."""
        self._url = endpoint_to_url(endpoint)

    @property
    def pending_requests(self) -> int:
        return len(self._handlers)

    def _insert_response_handler(self, request_id: str, handler: ResponseHandler) -> None:
        if request_id in self._handlers:
            raise ValueError(f"a handler for id '{request_id}' is already registered")
        self._handlers[request_id] = handler

    def send_request(self, method: str, params: Optional[dict] = None, handler: Optional[ResponseHandler] = None) -> str:
        """Post a request; the reply is dispatched before this returns.

        Returns the request id.
        """
        if not callable(handler):
            raise TypeError("handler must be callable")
        if not self._url:
            raise ValueError("no URL set")

        request = JsonRpcRequest()
        request.id = str(next(self._ids))
        request.method = method
        request.set_params(params if params is not None else {})
        request_id = request.id
        self._insert_response_handler(request_id, handler)

        try:
            reply = self._send_json(request.to_bytes())
            self.process_reply(reply)
        except BaseException:
            self._handlers.pop(request_id, None)
            raise
        return request_id

    def _send_json(self, body: bytes) -> bytes:
        headers = {"Content-Type": JSON_CONTENT_TYPE, "Accept": JSON_CONTENT_TYPE}
        try:
            response = self._http.post(self._url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise RpcNetworkError(str(exc)) from exc
        self.packet_sent.emit(body)
        if response.is_error:
            raise RpcNetworkError(f"HTTP {response.status_code} {response.reason_phrase}".strip())
        return response.content

    def process_reply(self, data: bytes) -> JsonRpcObject:
        """Parse a reply body and hand a response to the handler for its id."""
        self.packet_received.emit(data)
        try:
            document = json.loads(data)
        except ValueError as exc:
            raise RpcParseError(str(exc)) from exc
        if not isinstance(document, dict):
            raise RpcParseError("JSON document is not an object.")
        try:
            rpc_object = create_json_rpc_object(document)
        except JsonRpcObjectError as exc:
            raise RpcParseError(exc.message) from exc

        if isinstance(rpc_object, JsonRpcResponse):
            handler = self._handlers.pop(rpc_object.id, None)
            if handler is None:
                raise UnknownResponseIdError(rpc_object.id)
            handler(rpc_object)
        return rpc_object

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()