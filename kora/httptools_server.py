"""
HTTP/1.1 server driving an application callback, using httptools.

This module provides the transport that feeds requests into an
Application.callback() handler:
- Uses httptools for fast HTTP parsing
- Integrates with uvloop when available
- Implements HTTP keep-alive with per-connection request caps
- Enforces read timeouts and header/body size limits
- Exposes optional Prometheus metrics on a configurable path
- Adds graceful shutdown handling on SIGINT/SIGTERM
- Emits structured JSON access logs and per-request request IDs
"""

"""
Copyright 2025 Chris Bunting
File: httptools_server.py | Purpose: HTTP server for the middleware core
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-02 - Chris Bunting: Initial implementation
"""

import asyncio
import os
import signal
import ssl
import sys
import uuid
from typing import Awaitable, Callable, Optional, Set
from urllib.parse import urlsplit

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

from .core import statuses
from .core.http_parser import HTTPParser, HTTPParserError
from .core.server_utils import (
    access_log_payload, access_logger, configure_client_socket, default_logger as logger,
    get_server_kwargs, setup_uvloop
)
from .core.transport import IncomingMessage, ServerResponse, SocketInfo

REQ_TOTAL = Counter("kora_requests_total", "Total HTTP requests")
REQ_ERRORS = Counter("kora_request_errors_total", "Total HTTP request errors")
REQ_IN_FLIGHT = Gauge("kora_in_flight_requests", "In-flight requests")
REQ_LATENCY = Histogram("kora_request_duration_seconds", "Request duration seconds")

RequestHandler = Callable[[IncomingMessage, ServerResponse], Awaitable[None]]


class ConnectionHandler:
    """Runs the keep-alive request loop of one client connection."""

    def __init__(
        self,
        handler: RequestHandler,
        read_timeout: float = 10.0,
        header_limit: int = 8192,
        body_limit: int = 10 * 1024 * 1024,
        max_requests: int = 1000,
        shutdown_event: Optional[asyncio.Event] = None,
        metrics_path: Optional[str] = None,
    ):
        self.handler = handler
        self.read_timeout = read_timeout
        self.header_limit = header_limit
        self.body_limit = body_limit
        self.max_requests = max_requests
        self.shutdown_event = shutdown_event
        self.metrics_path = metrics_path

    async def handle_connection(self, reader, writer):
        """Handle keep-alive connection with multiple requests"""
        socket_info = SocketInfo.from_writer(writer)
        client = socket_info.client
        keep_alive = True
        requests_handled = 0

        while keep_alive and requests_handled < self.max_requests:
            # If server is shutting down, stop accepting new requests on this connection
            if self.shutdown_event and self.shutdown_event.is_set():
                logger.info("Shutdown in progress - closing connection to %s", client)
                break

            parser = HTTPParser(body_limit=self.body_limit)
            try:
                message = await self._read_request(reader, parser, socket_info)
            except HTTPParserError as e:
                logger.warning("Malformed HTTP request from %s: %s", client, e)
                await self._send_error(writer, 400)
                break

            if message is None:
                break

            path = urlsplit(message.url).path or "/"
            if self.metrics_path and path == self.metrics_path:
                await self._send_metrics(writer)
                requests_handled += 1
                keep_alive = parser.should_keep_alive
                continue

            request_id = message.headers.setdefault("x-request-id", str(uuid.uuid4()))
            res = ServerResponse(
                writer,
                method=message.method,
                http_version=message.http_version,
                keep_alive=parser.should_keep_alive,
                socket=socket_info,
            )
            res.set_header("X-Request-ID", request_id)

            start_time = asyncio.get_running_loop().time()
            REQ_TOTAL.inc()
            REQ_IN_FLIGHT.inc()
            try:
                await self.handler(message, res)
            except Exception:
                REQ_ERRORS.inc()
                logger.exception("Error processing request %s", request_id)
                # Return generic 500 without leaking internals
                if not res.headers_sent:
                    await self._send_error(writer, 500)
                break
            finally:
                duration = asyncio.get_running_loop().time() - start_time
                REQ_IN_FLIGHT.dec()
                REQ_LATENCY.observe(duration)
                access_logger.info(
                    "request",
                    extra=access_log_payload(
                        message.method, path, res.status_code, res.bytes_written,
                        duration, client, request_id,
                    ),
                )

            requests_handled += 1
            if not res.finished or res.destroyed:
                break
            keep_alive = res.keep_alive

    async def _read_request(self, reader, parser, socket_info):
        """Read and parse one HTTP request with timeouts and limits.

        Returns:
            The parsed IncomingMessage, or None when the connection closed,
            timed out or exceeded the size limits

        Raises:
            HTTPParserError: If the request is malformed
        """
        total_read = 0
        while not parser.complete:
            try:
                data = await asyncio.wait_for(reader.read(8192), timeout=self.read_timeout)
            except asyncio.TimeoutError:
                if total_read:
                    logger.warning("Read timeout while receiving request")
                return None

            if not data:
                return None

            total_read += len(data)
            # Enforce a soft header/body size limit to avoid resource exhaustion
            if total_read > self.header_limit + self.body_limit:
                logger.warning("Request exceeded configured max size (%d bytes)", total_read)
                return None

            parser.feed_data(data)

        return parser.to_message(socket_info)

    async def _send_error(self, writer, code: int) -> None:
        message = statuses.message(code) or "Error"
        response = (
            f"HTTP/1.1 {code} {message}\r\n"
            f"Content-Type: text/plain; charset=utf-8\r\n"
            f"Content-Length: {len(message)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
            f"{message}"
        ).encode()
        try:
            writer.write(response)
            await writer.drain()
        except ConnectionError:
            logger.debug("Client went away before the error response", exc_info=True)

    async def _send_metrics(self, writer) -> None:
        body = generate_latest()
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            + b"Content-Type: " + CONTENT_TYPE_LATEST.encode() + b"\r\n"
            + b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n"
            + body
        )
        await writer.drain()


class HTTPServer:
    """Asyncio HTTP/1.1 server for a request handler.

    Attributes:
        handler: Coroutine function ``(IncomingMessage, ServerResponse)``,
            typically Application.callback()
        host: Host address to bind to
        port: Port number to listen on (0 picks a free port)
    """

    def __init__(
        self,
        handler: RequestHandler,
        host: str = "127.0.0.1",
        port: int = 8000,
        *,
        ssl_context: Optional[ssl.SSLContext] = None,
        read_timeout: float = 10.0,
        header_limit: int = 8192,
        body_limit: int = 10 * 1024 * 1024,
        max_requests: int = 1000,
        max_connections: int = 1000,
        backlog: int = 2048,
        metrics_path: Optional[str] = None,
    ):
        """
        handler: request handler coroutine function
        ssl_context: optional ssl.SSLContext for TLS
        read_timeout: per-read timeout in seconds
        header_limit: maximum size in bytes for headers
        body_limit: maximum size in bytes for request body
        max_requests: max requests per connection (keep-alive)
        max_connections: maximum number of simultaneous connections
        backlog: listen backlog
        metrics_path: serve Prometheus metrics on this path when set
        """
        if not callable(handler):
            raise TypeError("handler must be callable")

        # Validate port number
        if not isinstance(port, int):
            raise ValueError("Port must be an integer")
        if port < 0 or port > 65535:
            raise ValueError("Port number must be between 0 and 65535")

        if not isinstance(backlog, int) or backlog < 1:
            raise ValueError("Backlog must be at least 1")
        if not isinstance(max_requests, int) or max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if not isinstance(max_connections, int) or max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        if read_timeout <= 0:
            raise ValueError("read_timeout must be positive")

        self.handler = handler
        self.host = host
        self.port = port
        self.ssl_context = ssl_context
        self.read_timeout = read_timeout
        self.header_limit = header_limit
        self.body_limit = body_limit
        self.max_requests = max_requests
        self.max_connections = max_connections
        self.backlog = backlog
        self.metrics_path = metrics_path

        self._server: Optional[asyncio.AbstractServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._connection_semaphore: Optional[asyncio.Semaphore] = None
        self._active_connections: Set[asyncio.Task] = set()

    @property
    def sockets(self):
        return self._server.sockets if self._server else ()

    def run(self):
        """Serve until SIGINT/SIGTERM (blocking)."""
        setup_uvloop()
        asyncio.run(self.serve())

    async def start(self) -> asyncio.AbstractServer:
        """Bind and start accepting connections.

        Raises:
            OSError: If server fails to bind to specified host/port
        """
        self._shutdown_event = asyncio.Event()
        self._connection_semaphore = asyncio.Semaphore(self.max_connections)
        self._server = await asyncio.start_server(
            self._handle_client,
            self.host,
            self.port,
            ssl=self.ssl_context,
            **get_server_kwargs(self.backlog),
        )

        bound = f"{self.host}:{self.port}"
        if self._server.sockets:
            addr = self._server.sockets[0].getsockname()
            bound = f"{addr[0]}:{addr[1]}"
        protocol = "https" if self.ssl_context else "http"
        logger.info("Serving on %s://%s pid=%s", protocol, bound, os.getpid())
        return self._server

    async def serve(self) -> None:
        """Start the server and run until a shutdown is requested."""
        await self.start()

        # Attach signal handlers for graceful shutdown (POSIX)
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, self._shutdown_event.set)
                except (NotImplementedError, RuntimeError):
                    logger.debug("Signal handler for %s not supported", sig)

        try:
            await self._shutdown_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop accepting connections and drain the active ones.

        Args:
            timeout: Maximum time in seconds to wait for connections to close
        """
        server, self._server = self._server, None
        if server is None:
            return

        logger.info("Initiating graceful shutdown...")
        self._shutdown_event.set()
        server.close()

        if self._active_connections:
            logger.info("Waiting for %d active connections to complete...", len(self._active_connections))
            done, pending = await asyncio.wait(list(self._active_connections), timeout=timeout)
            if pending:
                logger.warning("Force closing %d connections that didn't complete in time", len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.wait(pending, timeout=5.0)

        await server.wait_closed()
        logger.info("Server shutdown complete")

    async def _handle_client(self, reader, writer):
        if self._shutdown_event.is_set():
            writer.close()
            return

        configure_client_socket(writer)

        async with self._connection_semaphore:
            task = asyncio.current_task()
            if task:
                self._active_connections.add(task)
            handler = ConnectionHandler(
                self.handler,
                read_timeout=self.read_timeout,
                header_limit=self.header_limit,
                body_limit=self.body_limit,
                max_requests=self.max_requests,
                shutdown_event=self._shutdown_event,
                metrics_path=self.metrics_path,
            )
            try:
                await handler.handle_connection(reader, writer)
            except Exception:
                logger.exception("Connection handler raised an unexpected exception")
            finally:
                if task:
                    self._active_connections.discard(task)
                try:
                    writer.close()
                    await writer.wait_closed()
                except Exception:
                    logger.debug("Error closing writer", exc_info=True)
