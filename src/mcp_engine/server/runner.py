"""Server Runner - joins a Transport and a ServerSession.

The runner drives independent loops, each in its own task and cancel scope:

    read     transport.read_message() -> inbound channel
    write    outbound channel -> transport.write_message()
    process  session.process_next_message() (inbound -> handlers -> outbound)
    control  waits for the shutdown token and tears everything down
    cleanup  periodic transport.cleanup_sessions() (session-tracking transports only)
    signals  turns SIGINT/SIGTERM into a shutdown (optional)

Every loop catches and logs its own errors; only the shutdown path stops them.

Usage:
    server = Server("my-server")
    ...
    runner = ServerRunner(server, StdioServerTransport())
    await runner.run()
"""

import logging
import signal
from collections.abc import Awaitable, Callable

import anyio

from mcp_engine.server.lowlevel.server import Server
from mcp_engine.server.models import InitializationOptions
from mcp_engine.server.session import ServerSession
from mcp_engine.server.settings import Settings
from mcp_engine.server.transport import Transport
from mcp_engine.shared.channel import Channel
from mcp_engine.shared.exceptions import McpError
from mcp_engine.types import JSONRPCError

logger = logging.getLogger(__name__)

SHUTDOWN = "shutdown"

# Loops stopped as soon as shutdown begins; the rest get a chance to drain.
_EAGER_UNITS = ("read", "cleanup", "signals")


class ServerRunner:
    """Runs one session over one transport until shutdown."""

    def __init__(
        self,
        server: Server,
        transport: Transport,
        init_options: InitializationOptions | None = None,
        settings: Settings | None = None,
        session: ServerSession | None = None,
        handle_signals: bool = False,
    ) -> None:
        self.server = server
        self.transport = transport
        self.settings = settings or Settings()
        self.init_options = init_options or server.create_initialization_options()
        inbound, outbound = transport.get_streams()
        self.session = session or ServerSession(
            inbound,
            outbound,
            self.init_options,
            server.get_handlers(),
            server.get_notification_handlers(),
            ignore_unknown_methods=self.settings.ignore_unknown_methods,
        )
        self._handle_signals = handle_signals
        self._control: Channel[str] = Channel(8)
        self._scopes: dict[str, anyio.CancelScope] = {}
        self._running = False
        self._writing = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def units(self) -> list[str]:
        """Names of the loops currently running."""
        return list(self._scopes)

    def shutdown(self) -> None:
        """Ask the runner to shut down. Safe to call more than once."""
        if not self._control.push_nowait(SHUTDOWN):
            logger.debug("Shutdown already pending")

    def kill(self, name: str) -> bool:
        """Cancel one loop by name. Returns False if it is not running."""
        scope = self._scopes.get(name)
        if scope is None:
            return False
        logger.debug(f"Killing {name} loop")
        scope.cancel()
        return True

    async def run(self) -> None:
        """Start the transport and session and block until every loop has exited."""
        if self._running:
            raise RuntimeError("Runner already running")
        self._running = True

        await self.transport.start()
        await self.session.start()
        logger.info(f"Running server {self.server.name!r} over {type(self.transport).__name__}")
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._run_unit, "read", self._read_loop)
                tg.start_soon(self._run_unit, "write", self._write_loop)
                tg.start_soon(self._run_unit, "process", self._process_loop)
                tg.start_soon(self._run_unit, "control", self._control_loop)
                if self.transport.has_sessions:
                    tg.start_soon(self._run_unit, "cleanup", self._cleanup_loop)
                if self._handle_signals:
                    tg.start_soon(self._run_unit, "signals", self._signal_loop)
        finally:
            with anyio.CancelScope(shield=True):
                await self.session.stop()
                await self.transport.stop()
            self._running = False
            logger.info("Server stopped")

    async def _run_unit(self, name: str, loop: Callable[[], Awaitable[None]]) -> None:
        with anyio.CancelScope() as scope:
            self._scopes[name] = scope
            try:
                await loop()
            finally:
                self._scopes.pop(name, None)
                logger.debug(f"{name} loop exited")

    async def _read_loop(self) -> None:
        inbound, outbound = self.transport.get_streams()
        while self.transport.is_started:
            try:
                message = await self.transport.read_message()
            except McpError as err:
                # Undecodable input cannot be matched to a request id.
                logger.warning(f"Rejected malformed message: {err.error.message}")
                await outbound.push(JSONRPCError(id=None, error=err.error))
                continue
            except anyio.EndOfStream:
                logger.info("Transport reached end of input")
                self.shutdown()
                return
            except Exception:
                if not self.transport.is_started:
                    return
                logger.exception("Error reading from transport")
                await anyio.sleep(self.settings.poll_interval)
                continue

            if message is None:
                await anyio.sleep(self.settings.poll_interval)
                continue
            if not await inbound.push(message):
                return

    async def _write_loop(self) -> None:
        _, outbound = self.transport.get_streams()
        while self.transport.is_started and not outbound.closed:
            message = await outbound.pop(timeout=self.settings.poll_interval)
            if message is None:
                continue
            self._writing = True
            try:
                await self.transport.write_message(message)
            except Exception:
                logger.exception("Error writing message to transport")
            finally:
                self._writing = False

    async def _process_loop(self) -> None:
        inbound, _ = self.transport.get_streams()
        while self.session.is_started and not inbound.closed:
            try:
                await self.session.process_next_message(timeout=self.settings.poll_interval)
            except Exception:
                logger.exception("Error processing message")

    async def _cleanup_loop(self) -> None:
        while self.transport.is_started:
            await anyio.sleep(self.settings.cleanup_interval)
            try:
                await self.transport.cleanup_sessions(self.settings.session_max_age)
            except Exception:
                logger.exception("Error cleaning up sessions")

    async def _signal_loop(self) -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
                self.shutdown()
                return

    async def _control_loop(self) -> None:
        while True:
            token = await self._control.pop()
            if token is None or token == SHUTDOWN:
                break
            logger.warning(f"Ignoring unknown control token {token!r}")
        await self._shutdown()

    def _idle(self) -> bool:
        inbound, outbound = self.transport.get_streams()
        return inbound.empty() and outbound.empty() and not self.session.busy and not self._writing

    async def _shutdown(self) -> None:
        logger.info("Shutting down")
        timeout = self.settings.shutdown_timeout
        for name in _EAGER_UNITS:
            self.kill(name)

        with anyio.move_on_after(timeout) as drain_scope:
            while not self._idle():
                await anyio.sleep(self.settings.poll_interval / 4)
        if drain_scope.cancelled_caught:
            logger.warning("Timed out draining pending messages")

        await self.session.stop()
        await self.transport.stop()

        with anyio.move_on_after(timeout):
            while any(name != "control" for name in self._scopes):
                await anyio.sleep(self.settings.poll_interval / 4)
        for name in list(self._scopes):
            if name != "control":
                self.kill(name)

        inbound, outbound = self.transport.get_streams()
        inbound.close()
        outbound.close()
        self._control.close()
