import io
import json

import anyio
import pytest

from mcp_engine.server.stdio import StdioServerTransport
from mcp_engine.shared.exceptions import McpError
from mcp_engine.types import PARSE_ERROR, JSONRPCNotification, JSONRPCRequest, JSONRPCResponse

pytestmark = pytest.mark.anyio


async def test_stdio_server():
    stdin = io.StringIO()
    stdout = io.StringIO()

    messages = [
        JSONRPCRequest(id=1, method="ping"),
        JSONRPCResponse(id=2, result={}),
    ]
    for message in messages:
        stdin.write(message.model_dump_json(by_alias=True, exclude_none=True) + "\n")
    stdin.seek(0)

    transport = StdioServerTransport(stdin=stdin, stdout=stdout)
    await transport.start()

    received = [await transport.read_message() for _ in messages]
    assert received == messages

    with pytest.raises(anyio.EndOfStream):
        await transport.read_message()

    await transport.write_message(JSONRPCRequest(id=3, method="ping"))
    await transport.write_message(JSONRPCResponse(id=4, result={}))
    await transport.stop()

    lines = stdout.getvalue().splitlines()
    assert [json.loads(line) for line in lines] == [
        {"jsonrpc": "2.0", "id": 3, "method": "ping"},
        {"jsonrpc": "2.0", "id": 4, "result": {}},
    ]


async def test_blank_line_yields_none():
    transport = StdioServerTransport(stdin=io.StringIO("\n   \n"), stdout=io.StringIO())
    await transport.start()
    assert await transport.read_message() is None
    assert await transport.read_message() is None
    with pytest.raises(anyio.EndOfStream):
        await transport.read_message()


async def test_malformed_line_raises_parse_error():
    transport = StdioServerTransport(stdin=io.StringIO("{broken\n"), stdout=io.StringIO())
    await transport.start()
    with pytest.raises(McpError) as exc_info:
        await transport.read_message()
    assert exc_info.value.error.code == PARSE_ERROR


async def test_non_ascii_written_verbatim():
    stdout = io.StringIO()
    transport = StdioServerTransport(stdin=io.StringIO(), stdout=stdout)
    await transport.start()
    await transport.write_message(JSONRPCNotification(method="notifications/message", params={"data": "日本語"}))
    assert stdout.getvalue() == '{"jsonrpc":"2.0","method":"notifications/message","params":{"data":"日本語"}}\n'


async def test_start_stop_lifecycle():
    transport = StdioServerTransport(stdin=io.StringIO(), stdout=io.StringIO())

    with pytest.raises(RuntimeError, match="not started"):
        await transport.read_message()

    await transport.start()
    assert transport.is_started
    with pytest.raises(RuntimeError, match="already started"):
        await transport.start()

    await transport.stop()
    await transport.stop()
    assert not transport.is_started

    with pytest.raises(RuntimeError, match="not started"):
        await transport.write_message(JSONRPCRequest(id=1, method="ping"))


async def test_write_failure_becomes_runtime_error():
    stdout = io.StringIO()
    transport = StdioServerTransport(stdin=io.StringIO(), stdout=stdout)
    await transport.start()
    stdout.close()

    with pytest.raises(RuntimeError, match="Failed to write to stdout"):
        await transport.write_message(JSONRPCRequest(id=1, method="ping"))


async def test_streams_are_distinct_channels():
    transport = StdioServerTransport(stdin=io.StringIO(), stdout=io.StringIO(), queue_size=3)
    inbound, outbound = transport.get_streams()
    assert inbound is not outbound
    assert transport.get_streams() == (inbound, outbound)
    assert transport.has_sessions is False
