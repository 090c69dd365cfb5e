import anyio
import pytest

from mcp_engine.server.sse import MemoryStreamSink, SseServerTransport
from mcp_engine.shared.exceptions import McpError
from mcp_engine.types import INVALID_REQUEST, SESSION_NOT_FOUND, JSONRPCNotification, JSONRPCRequest

pytestmark = pytest.mark.anyio


class FakeSink:
    def __init__(self, fail: bool = False) -> None:
        self.events: list[tuple[str, str]] = []
        self.closed = False
        self.fail = fail

    async def send_event(self, event: str, data: str) -> None:
        if self.fail and event == "message":
            raise anyio.BrokenResourceError
        self.events.append((event, data))

    async def close(self) -> None:
        self.closed = True


async def _started_transport(endpoint: str = "/messages") -> SseServerTransport:
    transport = SseServerTransport(endpoint)
    await transport.start()
    return transport


async def test_sse_request_sends_endpoint_event():
    transport = await _started_transport()
    sink = FakeSink()

    session_id = await transport.handle_sse_request(sink)

    assert len(session_id) == 32
    assert transport.has_session(session_id)
    assert sink.events == [("endpoint", f"/messages?session_id={session_id}")]


async def test_endpoint_with_existing_query():
    transport = await _started_transport("/messages?tenant=a")
    sink = FakeSink()
    session_id = await transport.handle_sse_request(sink)
    assert sink.events == [("endpoint", f"/messages?tenant=a&session_id={session_id}")]


async def test_session_ids_are_unique():
    transport = await _started_transport()
    ids = {await transport.handle_sse_request(FakeSink()) for _ in range(20)}
    assert len(ids) == 20
    assert set(transport.session_ids) == ids


async def test_post_to_known_session_reaches_inbound():
    transport = await _started_transport()
    session_id = await transport.handle_sse_request(FakeSink())

    await transport.handle_post_request(session_id, b'{"jsonrpc":"2.0","id":1,"method":"ping"}')

    inbound, _ = transport.get_streams()
    assert await inbound.pop(timeout=1) == JSONRPCRequest(id=1, method="ping")


async def test_post_to_unknown_session():
    transport = await _started_transport()
    with pytest.raises(McpError) as exc_info:
        await transport.handle_post_request("nope", b'{"jsonrpc":"2.0","id":1,"method":"ping"}')
    assert exc_info.value.error.code == SESSION_NOT_FOUND
    assert exc_info.value.error.message == "Session not found"


async def test_post_with_invalid_message():
    transport = await _started_transport()
    session_id = await transport.handle_sse_request(FakeSink())
    with pytest.raises(McpError) as exc_info:
        await transport.handle_post_request(session_id, '{"jsonrpc":"2.0"}')
    assert exc_info.value.error.code == INVALID_REQUEST


async def test_write_broadcasts_to_all_sessions():
    transport = await _started_transport()
    sinks = [FakeSink() for _ in range(3)]
    for sink in sinks:
        await transport.handle_sse_request(sink)

    await transport.write_message(JSONRPCNotification(method="notifications/tools/list_changed"))

    payload = '{"jsonrpc":"2.0","method":"notifications/tools/list_changed"}'
    for sink in sinks:
        assert sink.events[-1] == ("message", payload)


async def test_failing_sink_is_dropped():
    transport = await _started_transport()
    good, bad = FakeSink(), FakeSink(fail=True)
    good_id = await transport.handle_sse_request(good)
    bad_id = await transport.handle_sse_request(bad)

    await transport.write_message(JSONRPCNotification(method="notifications/prompts/list_changed"))

    assert transport.has_session(good_id)
    assert not transport.has_session(bad_id)
    assert bad.closed
    assert good.events[-1][0] == "message"


async def test_cleanup_evicts_idle_sessions():
    transport = await _started_transport()
    sink = FakeSink()
    session_id = await transport.handle_sse_request(sink)

    await transport.cleanup_sessions(max_age=3600)
    assert transport.has_session(session_id)

    await anyio.sleep(0.02)
    await transport.cleanup_sessions(max_age=0.01)
    assert not transport.has_session(session_id)
    assert sink.closed

    with pytest.raises(McpError) as exc_info:
        await transport.handle_post_request(session_id, b'{"jsonrpc":"2.0","method":"notifications/initialized"}')
    assert exc_info.value.error.code == SESSION_NOT_FOUND


async def test_post_refreshes_last_seen():
    transport = await _started_transport()
    session_id = await transport.handle_sse_request(FakeSink())

    await anyio.sleep(0.05)
    await transport.handle_post_request(session_id, b'{"jsonrpc":"2.0","method":"notifications/initialized"}')
    await transport.cleanup_sessions(max_age=0.04)

    assert transport.has_session(session_id)


async def test_close_session_and_stop():
    transport = await _started_transport()
    first, second = FakeSink(), FakeSink()
    first_id = await transport.handle_sse_request(first)
    await transport.handle_sse_request(second)

    assert await transport.close_session(first_id)
    assert not await transport.close_session(first_id)
    assert first.closed

    await transport.stop()
    assert second.closed
    assert transport.session_ids == []
    assert not transport.is_started


async def test_read_message_returns_none():
    transport = await _started_transport()
    assert await transport.read_message() is None


async def test_memory_stream_sink():
    send_stream, receive_stream = anyio.create_memory_object_stream[dict](4)
    sink = MemoryStreamSink(send_stream)

    await sink.send_event("endpoint", "/messages?session_id=abc")
    assert await receive_stream.receive() == {"event": "endpoint", "data": "/messages?session_id=abc"}

    await sink.close()
    await sink.close()
    with pytest.raises(anyio.ClosedResourceError):
        await sink.send_event("message", "{}")
    with pytest.raises(anyio.EndOfStream):
        await receive_stream.receive()
    receive_stream.close()


async def test_full_memory_sink_is_dropped_without_blocking_broadcast():
    transport = await _started_transport()
    send_stream, receive_stream = anyio.create_memory_object_stream[dict](1)
    slow_id = await transport.handle_sse_request(MemoryStreamSink(send_stream))
    healthy = FakeSink()
    healthy_id = await transport.handle_sse_request(healthy)

    # The endpoint event is still unread, so the slow client's buffer is full
    with anyio.fail_after(2):
        await transport.write_message(JSONRPCNotification(method="notifications/tools/list_changed"))

    assert not transport.has_session(slow_id)
    assert transport.has_session(healthy_id)
    assert healthy.events[-1] == ("message", '{"jsonrpc":"2.0","method":"notifications/tools/list_changed"}')
    assert (await receive_stream.receive())["event"] == "endpoint"
    receive_stream.close()


async def test_memory_stream_sink_raises_when_full():
    send_stream, receive_stream = anyio.create_memory_object_stream[dict](1)
    sink = MemoryStreamSink(send_stream)

    await sink.send_event("endpoint", "/messages?session_id=abc")
    with pytest.raises(anyio.WouldBlock):
        await sink.send_event("message", "{}")

    await sink.close()
    receive_stream.close()
