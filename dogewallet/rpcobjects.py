"""JSON-RPC 2.0 message objects and a factory that classifies incoming JSON."""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from enum import IntEnum
from typing import Any, Dict, List, Optional

JSON_RPC_VERSION = "2.0"

JSONRPC_TAG = "jsonrpc"
ID_TAG = "id"
METHOD_TAG = "method"
PARAMS_TAG = "params"
RESULT_TAG = "result"
ERROR_TAG = "error"
ERROR_CODE_TAG = "code"
ERROR_MESSAGE_TAG = "message"
ERROR_DATA_TAG = "data"

_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


class JsonRpcErrorCode(IntEnum):
    """Standard JSON-RPC error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601

    @property
    def message(self) -> str:
        return _ERROR_MESSAGES[self]


_ERROR_MESSAGES = {
    JsonRpcErrorCode.PARSE_ERROR: "Parse error",
    JsonRpcErrorCode.INVALID_REQUEST: "Invalid Request",
    JsonRpcErrorCode.METHOD_NOT_FOUND: "Method not found",
}


class JsonRpcObjectError(ValueError):
    """Raised when a JSON value is not a valid JSON-RPC object."""

    def __init__(self, code: JsonRpcErrorCode, message: str, data: str = "") -> None:
        text = f"{message} ({int(code)})"
        if data:
            text += f": {data}"
        super().__init__(text)
        self.code = code
        self.message = message
        self.data = data


def _as_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not value.is_integer():
        return default
    number = int(value)
    if not _INT_MIN <= number <= _INT_MAX:
        return default
    return number


def _has_version(json_object: Mapping) -> bool:
    return _as_string(json_object.get(JSONRPC_TAG)) == JSON_RPC_VERSION


def _has_method(json_object: Mapping) -> bool:
    return METHOD_TAG in json_object and json_object[METHOD_TAG] is not None


def is_valid_request(json_object: Mapping) -> bool:
    """A request has the version, a non-null method and an id."""
    return _has_version(json_object) and _has_method(json_object) and ID_TAG in json_object


def is_valid_response(json_object: Mapping) -> bool:
    """A response has the version, an id and exactly one of result or error."""
    if not (_has_version(json_object) and ID_TAG in json_object):
        return False
    has_error = ERROR_TAG in json_object
    if (RESULT_TAG in json_object) == has_error:
        return False
    if not has_error:
        return True
    error = json_object[ERROR_TAG]
    if not isinstance(error, Mapping):
        return False
    if ERROR_CODE_TAG not in error or ERROR_MESSAGE_TAG not in error:
        return False
    return _as_int(error[ERROR_CODE_TAG], _INT_MAX) != _INT_MAX


def is_valid_notification(json_object: Mapping) -> bool:
    """A notification has the version and a non-null method but no id."""
    return _has_version(json_object) and _has_method(json_object) and ID_TAG not in json_object


def _never_valid(json_object: Mapping) -> bool:
    return False


def _container(value: Any) -> Any:
    if isinstance(value, Mapping):
        return copy.deepcopy(dict(value))
    if isinstance(value, (list, tuple)):
        return copy.deepcopy(list(value))
    raise TypeError(f"expected a mapping or a sequence, got {type(value).__name__}")


def _list_value(json_object: Mapping, tag: str) -> List[Any]:
    value = json_object.get(tag)
    return copy.deepcopy(value) if isinstance(value, list) else []


def _dict_value(json_object: Mapping, tag: str) -> Dict[str, Any]:
    value = json_object.get(tag)
    return copy.deepcopy(value) if isinstance(value, dict) else {}


class JsonRpcObject:
    """A JSON object that always carries the JSON-RPC version tag."""

    _validator = staticmethod(_never_valid)

    def __init__(self, json_object: Optional[Mapping] = None) -> None:
        self._json: Dict[str, Any] = copy.deepcopy(dict(json_object)) if json_object is not None else {}
        self._json[JSONRPC_TAG] = JSON_RPC_VERSION

    @property
    def jsonrpc(self) -> str:
        return _as_string(self._json.get(JSONRPC_TAG))

    def is_valid(self) -> bool:
        return self._validator(self._json)

    def to_bytes(self) -> bytes:
        """Compact UTF-8 JSON with keys in sorted order."""
        return json.dumps(
            self._json, separators=(",", ":"), sort_keys=True, ensure_ascii=False
        ).encode("utf-8")

    def to_json_object(self) -> Dict[str, Any]:
        return copy.deepcopy(self._json)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JsonRpcObject):
            return NotImplemented
        return type(self) is type(other) and self._json == other._json

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._json!r})"


class _IdMixin:
    _json: Dict[str, Any]

    @property
    def id(self) -> str:
        return _as_string(self._json.get(ID_TAG))

    @id.setter
    def id(self, value: Optional[str]) -> None:
        self._json[ID_TAG] = value


class _MethodMixin:
    _json: Dict[str, Any]

    @property
    def method(self) -> str:
        return _as_string(self._json.get(METHOD_TAG))

    @method.setter
    def method(self, value: str) -> None:
        self._json[METHOD_TAG] = value


class JsonRpcRequest(_IdMixin, _MethodMixin, JsonRpcObject):
    """A call that expects a response."""

    _validator = staticmethod(is_valid_request)

    def params_as_list(self) -> List[Any]:
        return _list_value(self._json, PARAMS_TAG)

    def params_as_dict(self) -> Dict[str, Any]:
        return _dict_value(self._json, PARAMS_TAG)

    def set_params(self, params: Any) -> None:
        self._json[PARAMS_TAG] = _container(params)


class JsonRpcNotification(_MethodMixin, JsonRpcObject):
    """A call without an id; no response is expected."""

    _validator = staticmethod(is_valid_notification)

    def params_as_list(self) -> List[Any]:
        return _list_value(self._json, PARAMS_TAG)

    def params_as_dict(self) -> Dict[str, Any]:
        return _dict_value(self._json, PARAMS_TAG)

    def set_params(self, params: Any) -> None:
        self._json[PARAMS_TAG] = _container(params)


class JsonRpcResponse(_IdMixin, JsonRpcObject):
    """A result or an error for a request with the same id."""

    _validator = staticmethod(is_valid_response)

    def result_as_list(self) -> List[Any]:
        return _list_value(self._json, RESULT_TAG)

    def result_as_dict(self) -> Dict[str, Any]:
        return _dict_value(self._json, RESULT_TAG)

    def set_result(self, result: Any) -> None:
        self._json[RESULT_TAG] = _container(result)

    @property
    def is_error_response(self) -> bool:
        return ERROR_TAG in self._json

    def _error(self) -> Mapping:
        error = self._json.get(ERROR_TAG)
        return error if isinstance(error, Mapping) else {}

    @property
    def error_code(self) -> int:
        return _as_int(self._error().get(ERROR_CODE_TAG), 0)

    @property
    def error_message(self) -> str:
        return _as_string(self._error().get(ERROR_MESSAGE_TAG))

    @property
    def error_data(self) -> Any:
        return copy.deepcopy(self._error().get(ERROR_DATA_TAG))

    def set_error(self, code: int, message: str, data: Any = None) -> None:
        error: Dict[str, Any] = {ERROR_CODE_TAG: int(code), ERROR_MESSAGE_TAG: message}
        if data is not None:
            error[ERROR_DATA_TAG] = copy.deepcopy(data)
        self._json[ERROR_TAG] = error


def create_json_rpc_object(value: Any) -> JsonRpcObject:
    """Classify a decoded JSON value as a request, response or notification.

    Raises JsonRpcObjectError when it is none of them.
    """
    invalid = JsonRpcErrorCode.INVALID_REQUEST
    if not isinstance(value, Mapping):
        raise JsonRpcObjectError(invalid, invalid.message)
    if JSONRPC_TAG not in value or not _has_version(value):
        raise JsonRpcObjectError(invalid, invalid.message, "Incorrect JSON RPC version")
    if is_valid_request(value):
        return JsonRpcRequest(value)
    if is_valid_response(value):
        return JsonRpcResponse(value)
    if is_valid_notification(value):
        return JsonRpcNotification(value)
    raise JsonRpcObjectError(invalid, invalid.message)