"""
ServerSession Module

This module provides the ServerSession class, which owns the protocol state of one
logical client connection: the initialize handshake, dispatch of incoming requests
and notifications to registered handlers, and the outbound notification helpers.

Common usage pattern:
```
    server = Server(name)

    @server.call_tool()
    async def handle_tool_call(name: str, arguments: dict[str, Any]) -> Any:
        ...

    inbound, outbound = transport.get_streams()
    session = ServerSession(
        inbound,
        outbound,
        server.create_initialization_options(),
        server.get_handlers(),
        server.get_notification_handlers(),
    )
```

The ServerSession class is typically created by the ServerRunner and should not
need to be instantiated directly by users of the framework.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any

import anyio.lowlevel
from pydantic import BaseModel, ValidationError

import mcp_engine.types as types
from mcp_engine.server.models import InitializationOptions
from mcp_engine.shared.channel import Channel
from mcp_engine.shared.exceptions import McpError
from mcp_engine.shared.version import SUPPORTED_PROTOCOL_VERSIONS

logger = logging.getLogger(__name__)

RequestHandler = Callable[[dict[str, Any] | None], Awaitable[Any] | Any]
NotificationHandler = Callable[[dict[str, Any] | None], Awaitable[None] | None]


class InitializationState(Enum):
    NotInitialized = 1
    Initializing = 2
    Initialized = 3


def _serialize_result(result: Any) -> dict[str, Any]:
    """Turn a handler return value into a JSON-RPC ``result`` object."""
    if result is None:
        return {}
    if isinstance(result, BaseModel):
        return result.model_dump(by_alias=True, mode="json", exclude_none=True)
    if isinstance(result, dict):
        return result
    raise TypeError(f"Handler returned unsupported result type: {type(result).__name__}")


async def _invoke(handler: Callable[..., Any], params: dict[str, Any] | None) -> Any:
    result = handler(params)
    if inspect.isawaitable(result):
        result = await result
    return result


class ServerSession:
    """Handshake and dispatch state machine for one client connection.

    Incoming messages are popped from ``read_stream``; every Response, Error and
    Notification the session produces is pushed to ``write_stream``.
    """

    def __init__(
        self,
        read_stream: Channel[types.JSONRPCMessage],
        write_stream: Channel[types.JSONRPCMessage],
        init_options: InitializationOptions,
        request_handlers: Mapping[str, RequestHandler] | None = None,
        notification_handlers: Mapping[str, NotificationHandler] | None = None,
        ignore_unknown_methods: bool = False,
    ) -> None:
        self._read_stream = read_stream
        self._write_stream = write_stream
        self._init_options = init_options
        self._request_handlers: dict[str, RequestHandler] = dict(request_handlers or {})
        self._notification_handlers: dict[str, NotificationHandler] = dict(notification_handlers or {})
        self._ignore_unknown_methods = ignore_unknown_methods
        self._initialization_state = InitializationState.NotInitialized
        self._client_params: types.InitializeRequestParams | None = None
        self._started = False
        self._busy = False

    async def start(self) -> None:
        if self._started:
            raise RuntimeError("Session already started")
        self._started = True

    async def stop(self) -> None:
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def busy(self) -> bool:
        """True while a message is being dispatched."""
        return self._busy

    @property
    def initialization_state(self) -> InitializationState:
        return self._initialization_state

    @property
    def client_params(self) -> types.InitializeRequestParams | None:
        return self._client_params

    def check_client_capability(self, capability: types.ClientCapabilities) -> bool:
        """Check if the client supports a specific capability."""
        if self._client_params is None:
            return False

        # Get client capabilities from initialization params
        client_caps = self._client_params.capabilities

        # Check each specified capability in the passed in capability object
        if capability.roots is not None:
            if client_caps.roots is None:
                return False
            if capability.roots.listChanged and not client_caps.roots.listChanged:
                return False

        if capability.sampling is not None:
            if client_caps.sampling is None:
                return False

        if capability.experimental is not None:
            if client_caps.experimental is None:
                return False
            # Check each experimental capability
            for exp_key, exp_value in capability.experimental.items():
                if exp_key not in client_caps.experimental or client_caps.experimental[exp_key] != exp_value:
                    return False

        return True

    async def process_next_message(self, timeout: float | None = None) -> bool:
        """Pop one inbound message and dispatch it.

        Returns False if nothing arrived within ``timeout``.
        """
        message = await self._read_stream.pop(timeout)
        if message is None:
            return False

        self._busy = True
        try:
            await self._dispatch(message)
        finally:
            self._busy = False
        return True

    async def _dispatch(self, message: types.JSONRPCMessage) -> None:
        match message:
            case types.JSONRPCRequest():
                try:
                    await self.handle_request(message)
                except RuntimeError as exc:
                    logger.warning(f"Rejected request {message.method!r}: {exc}")
                    await self._send(
                        types.JSONRPCError(
                            id=message.id,
                            error=types.ErrorData(code=types.INVALID_REQUEST, message=str(exc)),
                        )
                    )
            case types.JSONRPCNotification():
                try:
                    await self.handle_notification(message)
                except RuntimeError as exc:
                    logger.warning(f"Ignored notification {message.method!r}: {exc}")
            case types.JSONRPCResponse() | types.JSONRPCError():
                logger.warning(f"Dropping unexpected client response for id {message.id!r}")

    async def handle_request(
        self, request: types.JSONRPCRequest
    ) -> types.JSONRPCResponse | types.JSONRPCError | None:
        """Dispatch a request and queue its Response or Error.

        Returns the queued message, or None when an unknown method is ignored.

        Raises:
            RuntimeError: the handshake has not completed and the request is not
                ``initialize``.
        """
        if request.method == "initialize":
            return await self.handle_initialize(request)

        if self._initialization_state != InitializationState.Initialized:
            raise RuntimeError("Received request before initialization was complete")

        handler = self._request_handlers.get(request.method)
        if handler is None:
            if self._ignore_unknown_methods:
                logger.debug(f"Ignoring request for unregistered method {request.method!r}")
                return None
            response: types.JSONRPCResponse | types.JSONRPCError = types.JSONRPCError(
                id=request.id,
                error=types.ErrorData(code=types.METHOD_NOT_FOUND, message=f"Method not found: {request.method}"),
            )
        else:
            logger.debug(f"Dispatching request {request.method!r} (id={request.id!r})")
            try:
                result = await _invoke(handler, request.params)
                response = types.JSONRPCResponse(id=request.id, result=_serialize_result(result))
            except McpError as err:
                response = types.JSONRPCError(id=request.id, error=err.error)
            except Exception as err:
                logger.exception(f"Handler for {request.method!r} failed")
                response = types.JSONRPCError(
                    id=request.id,
                    error=types.ErrorData(code=types.INTERNAL_ERROR, message=str(err)),
                )

        await self._send(response)
        return response

    async def handle_notification(self, notification: types.JSONRPCNotification) -> None:
        """Dispatch a notification. Handler failures are logged, never answered.

        Raises:
            RuntimeError: the handshake has not completed.
        """
        # Need this to avoid ASYNC910
        await anyio.lowlevel.checkpoint()
        if notification.method == "notifications/initialized":
            self._initialization_state = InitializationState.Initialized
            return

        if self._initialization_state != InitializationState.Initialized:
            raise RuntimeError("Received notification before initialization was complete")

        handler = self._notification_handlers.get(notification.method)
        if handler is None:
            logger.debug(f"No handler registered for notification {notification.method!r}")
            return

        try:
            await _invoke(handler, notification.params)
        except Exception:
            logger.exception(f"Notification handler for {notification.method!r} failed")

    async def handle_initialize(self, request: types.JSONRPCRequest) -> types.JSONRPCResponse | types.JSONRPCError:
        """Run the initialize handshake and queue the Initialize response."""
        previous_state = self._initialization_state
        self._initialization_state = InitializationState.Initializing
        try:
            params = types.InitializeRequestParams.model_validate(request.params or {})
        except ValidationError as exc:
            # A rejected re-initialize leaves an established session as it was
            self._initialization_state = previous_state
            error = types.JSONRPCError(
                id=request.id,
                error=types.ErrorData(code=types.INVALID_PARAMS, message=f"Invalid initialize params: {exc}"),
            )
            await self._send(error)
            return error

        self._client_params = params
        requested_version = params.protocolVersion
        result = types.InitializeResult(
            protocolVersion=requested_version
            if requested_version in SUPPORTED_PROTOCOL_VERSIONS
            else types.LATEST_PROTOCOL_VERSION,
            capabilities=self._init_options.capabilities,
            serverInfo=types.Implementation(
                name=self._init_options.server_name,
                version=self._init_options.server_version,
            ),
            instructions=self._init_options.instructions,
        )
        response = types.JSONRPCResponse(id=request.id, result=_serialize_result(result))
        await self._send(response)
        self._initialization_state = InitializationState.Initialized
        client_name = params.clientInfo.name if params.clientInfo else "unknown client"
        logger.info(f"Session initialized with {client_name} (protocol {result.protocolVersion})")
        return response

    async def send_notification(self, method: str, params: BaseModel | dict[str, Any] | None = None) -> None:
        """Queue a server notification. No response is awaited."""
        if isinstance(params, BaseModel):
            params = params.model_dump(by_alias=True, mode="json", exclude_none=True)
        await self._send(types.JSONRPCNotification(method=method, params=params))

    async def send_log_message(
        self,
        level: types.LoggingLevel,
        data: Any,
        logger: str | None = None,
    ) -> None:
        """Send a log message notification."""
        await self.send_notification(
            "notifications/message",
            types.LoggingMessageNotificationParams(level=level, data=data, logger=logger),
        )

    async def send_resource_updated(self, uri: str) -> None:
        """Send a resource updated notification."""
        await self.send_notification(
            "notifications/resources/updated",
            types.ResourceUpdatedNotificationParams(uri=str(uri)),
        )

    async def send_progress_notification(
        self,
        progress_token: str | int,
        progress: float,
        total: float | None = None,
        message: str | None = None,
    ) -> None:
        """Send a progress notification."""
        await self.send_notification(
            "notifications/progress",
            types.ProgressNotificationParams(
                progressToken=progress_token,
                progress=progress,
                total=total,
                message=message,
            ),
        )

    async def send_resource_list_changed(self) -> None:
        """Send a resource list changed notification."""
        await self.send_notification("notifications/resources/list_changed")

    async def send_tool_list_changed(self) -> None:
        """Send a tool list changed notification."""
        await self.send_notification("notifications/tools/list_changed")

    async def send_prompt_list_changed(self) -> None:
        """Send a prompt list changed notification."""
        await self.send_notification("notifications/prompts/list_changed")

    async def wait_for_response(self, *args: Any, **kwargs: Any) -> Any:
        raise RuntimeError("Server does not support waiting for responses from the client.")

    async def _send(self, message: types.JSONRPCMessage) -> None:
        if not await self._write_stream.push(message):
            logger.warning(f"Outbound channel closed, dropping {type(message).__name__}")
