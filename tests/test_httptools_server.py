import asyncio

import pytest

from kora.core.application import Application
from kora.httptools_server import ConnectionHandler, HTTPServer

from helpers import MockStreamReader, MockStreamWriter, split_response


def make_app():
    app = Application(silent=True)

    async def hello(ctx, call_next):
        if ctx.path == "/boom":
            raise RuntimeError("boom")
        ctx.body = {"path": ctx.path, "query": ctx.query, "request_id": ctx.get("X-Request-ID")}

    app.use(hello)
    return app


@pytest.mark.parametrize("kwargs, message", [
    ({"port": "8000"}, "Port must be an integer"),
    ({"port": 70000}, "Port number must be between 0 and 65535"),
    ({"backlog": 0}, "Backlog must be at least 1"),
    ({"max_requests": 0}, "max_requests must be at least 1"),
    ({"max_connections": 0}, "max_connections must be at least 1"),
    ({"read_timeout": 0}, "read_timeout must be positive"),
])
def test_invalid_configuration(kwargs, message):
    with pytest.raises(ValueError, match=message):
        HTTPServer(make_app().callback(), **kwargs)


def test_handler_must_be_callable():
    with pytest.raises(TypeError):
        HTTPServer(object())


@pytest.mark.asyncio
async def test_single_request():
    handler = ConnectionHandler(make_app().callback())
    reader = MockStreamReader(
        b"GET /items?page=2 HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n"
    )
    writer = MockStreamWriter()
    await handler.handle_connection(reader, writer)

    status_line, headers, body = split_response(writer.output)
    assert status_line == "HTTP/1.1 200 OK"
    assert headers["connection"] == "close"
    assert headers["x-request-id"]
    assert b'"path":"/items"' in body
    assert b'"query":{"page":"2"}' in body
    assert headers["x-request-id"].encode() in body


@pytest.mark.asyncio
async def test_request_id_is_propagated():
    handler = ConnectionHandler(make_app().callback())
    reader = MockStreamReader(
        b"GET / HTTP/1.1\r\nHost: a\r\nX-Request-ID: abc-123\r\nConnection: close\r\n\r\n"
    )
    writer = MockStreamWriter()
    await handler.handle_connection(reader, writer)
    _, headers, body = split_response(writer.output)
    assert headers["x-request-id"] == "abc-123"
    assert b'"request_id":"abc-123"' in body


@pytest.mark.asyncio
async def test_keep_alive_serves_multiple_requests():
    handler = ConnectionHandler(make_app().callback())
    reader = MockStreamReader(
        b"GET /first HTTP/1.1\r\nHost: a\r\n\r\n",
        b"GET /second HTTP/1.1\r\nHost: a\r\nConnection: close\r\n\r\n",
    )
    writer = MockStreamWriter()
    await handler.handle_connection(reader, writer)
    output = writer.output
    assert output.count(b"HTTP/1.1 200 OK") == 2
    assert b'"path":"/first"' in output
    assert b'"path":"/second"' in output


@pytest.mark.asyncio
async def test_max_requests_per_connection():
    handler = ConnectionHandler(make_app().callback(), max_requests=1)
    reader = MockStreamReader(
        b"GET /first HTTP/1.1\r\nHost: a\r\n\r\n",
        b"GET /second HTTP/1.1\r\nHost: a\r\n\r\n",
    )
    writer = MockStreamWriter()
    await handler.handle_connection(reader, writer)
    assert writer.output.count(b"HTTP/1.1 200 OK") == 1


@pytest.mark.asyncio
async def test_malformed_request_gets_400():
    handler = ConnectionHandler(make_app().callback())
    writer = MockStreamWriter()
    await handler.handle_connection(MockStreamReader(b"NOT A VALID REQUEST\r\n\r\n"), writer)
    status_line, headers, body = split_response(writer.output)
    assert status_line == "HTTP/1.1 400 Bad Request"
    assert headers["connection"] == "close"
    assert body == b"Bad Request"


@pytest.mark.asyncio
async def test_application_error_is_500():
    handler = ConnectionHandler(make_app().callback())
    writer = MockStreamWriter()
    await handler.handle_connection(
        MockStreamReader(b"GET /boom HTTP/1.1\r\nHost: a\r\nConnection: close\r\n\r\n"), writer
    )
    status_line, headers, body = split_response(writer.output)
    assert status_line == "HTTP/1.1 500 Internal Server Error"
    assert body == b"Internal Server Error"
    assert headers["x-request-id"]


@pytest.mark.asyncio
async def test_error_response_keeps_request_id():
    handler = ConnectionHandler(make_app().callback())
    writer = MockStreamWriter()
    await handler.handle_connection(
        MockStreamReader(
            b"GET /boom HTTP/1.1\r\nHost: a\r\nX-Request-ID: trace-7\r\nConnection: close\r\n\r\n"
        ),
        writer,
    )
    status_line, headers, _ = split_response(writer.output)
    assert status_line == "HTTP/1.1 500 Internal Server Error"
    assert headers["x-request-id"] == "trace-7"


@pytest.mark.asyncio
async def test_raw_handler_failure_is_500():
    async def broken(req, res):
        raise RuntimeError("transport level failure")

    handler = ConnectionHandler(broken)
    writer = MockStreamWriter()
    await handler.handle_connection(
        MockStreamReader(b"GET / HTTP/1.1\r\nHost: a\r\n\r\n"), writer
    )
    status_line, _, body = split_response(writer.output)
    assert status_line == "HTTP/1.1 500 Internal Server Error"
    assert b"transport level failure" not in writer.output


@pytest.mark.asyncio
async def test_oversized_body_rejected():
    handler = ConnectionHandler(make_app().callback(), body_limit=4)
    writer = MockStreamWriter()
    await handler.handle_connection(
        MockStreamReader(b"POST / HTTP/1.1\r\nHost: a\r\nContent-Length: 10\r\n\r\n0123456789"),
        writer,
    )
    assert split_response(writer.output)[0] == "HTTP/1.1 400 Bad Request"


@pytest.mark.asyncio
async def test_eof_closes_quietly():
    handler = ConnectionHandler(make_app().callback())
    writer = MockStreamWriter()
    await handler.handle_connection(MockStreamReader(), writer)
    assert writer.output == b""


@pytest.mark.asyncio
async def test_metrics_path():
    handler = ConnectionHandler(make_app().callback(), metrics_path="/metrics")
    writer = MockStreamWriter()
    await handler.handle_connection(
        MockStreamReader(b"GET /metrics HTTP/1.1\r\nHost: a\r\nConnection: close\r\n\r\n"),
        writer,
    )
    status_line, headers, body = split_response(writer.output)
    assert status_line == "HTTP/1.1 200 OK"
    assert headers["content-type"].startswith("text/plain")
    assert b"kora_requests_total" in body


@pytest.mark.asyncio
async def test_serves_application_over_tcp():
    server = HTTPServer(make_app().callback(), "127.0.0.1", 0, read_timeout=2.0)
    await server.start()
    port = server.sockets[0].getsockname()[1]
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"GET /hi?x=1 HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n")
        await writer.drain()
        raw = await asyncio.wait_for(reader.read(), timeout=5)
        writer.close()
        await writer.wait_closed()
    finally:
        await server.shutdown(timeout=5)

    status_line, headers, body = split_response(raw)
    assert status_line == "HTTP/1.1 200 OK"
    assert headers["content-type"] == "application/json; charset=utf-8"
    assert b'"path":"/hi"' in body
    assert server.sockets == ()


@pytest.mark.asyncio
async def test_shutdown_without_start_is_noop():
    server = HTTPServer(make_app().callback(), port=0)
    await server.shutdown()
