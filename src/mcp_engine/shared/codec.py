"""JSON-RPC Message Codec

Turns raw wire payloads into one of the four JSON-RPC message models and back.
JSON-RPC carries no explicit discriminator, so the variant is picked purely from
which fields are present:

    error                          -> JSONRPCError
    method + id, no result         -> JSONRPCRequest
    method, no id, no result       -> JSONRPCNotification
    id + result, no method         -> JSONRPCResponse

Anything else (for example a payload carrying both ``method`` and ``result``)
is rejected with INVALID_REQUEST rather than guessed at.

Example:
    ```python
    message = decode(b'{"jsonrpc":"2.0","id":1,"method":"ping"}')
    assert isinstance(message, JSONRPCRequest)
    line = encode(message)
    ```
"""

import json
from typing import Any

from pydantic import ValidationError

from mcp_engine.shared.exceptions import McpError
from mcp_engine.types import (
    INVALID_REQUEST,
    JSONRPC_VERSION,
    PARSE_ERROR,
    ErrorData,
    JSONRPCError,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
)

META_KEY = "_meta"


def _invalid_request(message: str) -> McpError:
    return McpError(ErrorData(code=INVALID_REQUEST, message=f"Invalid Request: {message}"))


def _strip_empty_meta(value: Any) -> Any:
    """Drop an empty ``_meta`` entry from a params/result object."""
    if isinstance(value, dict) and META_KEY in value and not value[META_KEY]:
        return {k: v for k, v in value.items() if k != META_KEY}
    return value


def decode(data: bytes | str) -> JSONRPCMessage:
    """Parse a single JSON-RPC message.

    Raises:
        McpError: PARSE_ERROR if ``data`` is not valid JSON, INVALID_REQUEST if
            it is JSON but not a well-formed JSON-RPC 2.0 message.
    """
    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise McpError(ErrorData(code=PARSE_ERROR, message=f"Parse error: {exc}")) from exc

    if not isinstance(payload, dict):
        raise _invalid_request("message must be a JSON object")

    if payload.get("jsonrpc") != JSONRPC_VERSION:
        raise _invalid_request('jsonrpc version must be "2.0"')

    has_method = "method" in payload
    has_id = "id" in payload
    has_result = "result" in payload
    has_error = "error" in payload

    for key in ("params", "result"):
        if key in payload:
            payload[key] = _strip_empty_meta(payload[key])

    try:
        if has_error:
            error = payload["error"]
            if not isinstance(error, dict) or "code" not in error or "message" not in error:
                raise _invalid_request("error object must contain code and message")
            return JSONRPCError.model_validate(payload)
        if has_method and has_id and not has_result:
            return JSONRPCRequest.model_validate(payload)
        if has_method and not has_id and not has_result:
            return JSONRPCNotification.model_validate(payload)
        if has_id and has_result and not has_method:
            return JSONRPCResponse.model_validate(payload)
    except ValidationError as exc:
        details = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in exc.errors())
        raise _invalid_request(details) from exc

    raise _invalid_request("Could not determine message type")


def encode(message: JSONRPCMessage) -> str:
    """Serialize a message to its canonical single-line JSON form.

    Slashes and non-ASCII characters are written as-is; empty ``_meta`` maps
    are omitted. A message holding lone surrogates is written with ASCII
    escapes instead, so the line is always valid UTF-8.
    """
    payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}

    match message:
        case JSONRPCRequest(id=request_id, method=method, params=params):
            payload["id"] = request_id
            payload["method"] = method
            if params is not None:
                payload["params"] = _strip_empty_meta(params)
        case JSONRPCNotification(method=method, params=params):
            payload["method"] = method
            if params is not None:
                payload["params"] = _strip_empty_meta(params)
        case JSONRPCResponse(id=request_id, result=result):
            payload["id"] = request_id
            payload["result"] = _strip_empty_meta(result)
        case JSONRPCError(id=request_id, error=error):
            # id stays in the output even when null: the peer could not be matched
            payload["id"] = request_id
            payload["error"] = error.model_dump(mode="json", exclude_none=True)

    if message.model_extra:
        for key, value in message.model_extra.items():
            payload.setdefault(key, value)

    line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    try:
        line.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates (valid as JSON escapes on input) cannot be written as UTF-8
        line = json.dumps(payload, ensure_ascii=True, separators=(",", ":"))
    return line
