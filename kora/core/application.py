"""
Application: middleware registration and per-request dispatch.

The application holds the ordered middleware list and its configuration.
For each request handed over by the transport it builds a Context, runs the
composed pipeline, then either writes the final response state to the
transport or runs the error path (report the failure, write a generic
fallback response when headers were not sent yet).
"""

import inspect
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import statuses
from .compose import Middleware, compose
from .context import Context
from .request import Request
from .response import Response, dump_json, is_stream
from .server_utils import default_logger as logger

ErrorReporter = Callable[[BaseException, Optional[Context]], Any]

# Read size when piping file-like bodies
STREAM_CHUNK_SIZE = 65536


@dataclass
class ApplicationConfig:
    """Application settings.

    Attributes:
        env: Environment name, defaults to $KORA_ENV or 'development'
        keys: Signing keys for extensions that need them
        proxy: Trust X-Forwarded-* headers
        subdomain_offset: Number of trailing host labels ignored by subdomains
        proxy_ip_header: Header holding the client address chain
        max_ips_count: Keep only this many trailing addresses (0 = all)
        silent: Disable the default error log output
    """
    env: Optional[str] = None
    keys: Optional[List[str]] = None
    proxy: bool = False
    subdomain_offset: int = 2
    proxy_ip_header: str = 'X-Forwarded-For'
    max_ips_count: int = 0
    silent: bool = False

    def __post_init__(self):
        self.env = self.env or os.environ.get('KORA_ENV', 'development')
        self.keys = list(self.keys) if self.keys else []
        if not isinstance(self.subdomain_offset, int) or self.subdomain_offset < 0:
            raise ValueError('subdomain_offset must be a non-negative integer')
        if not isinstance(self.max_ips_count, int) or self.max_ips_count < 0:
            raise ValueError('max_ips_count must be a non-negative integer')


class LoggingErrorReporter:
    """Default error reporting channel writing to the framework logger.

    Errors that are expected to reach the client (404s and exposed
    HttpErrors) are not logged, nor is anything for silent applications.
    """

    def __init__(self, logger=logger):
        self.logger = logger

    def __call__(self, err: BaseException, ctx: Optional[Context] = None) -> None:
        if getattr(err, 'status', None) == 404 or getattr(err, 'expose', False):
            return
        if ctx is not None and ctx.app.config.silent:
            return

        where = f' for {ctx.method} {ctx.url}' if ctx is not None else ''
        self.logger.error(
            f'Unhandled {type(err).__name__}{where}: {err}',
            exc_info=(type(err), err, err.__traceback__),
        )


class Application:
    """Ordered middleware plus the dispatch logic that runs them.

    Args:
        error_reporter: Callable ``(err, ctx)`` receiving every unrecovered
            failure; defaults to LoggingErrorReporter
        **options: ApplicationConfig fields
    """

    context_class = Context
    request_class = Request
    response_class = Response

    def __init__(self, error_reporter: Optional[ErrorReporter] = None, **options: Any):
        self.config = ApplicationConfig(**options)
        self.middleware: List[Middleware] = []
        self.error_reporter = error_reporter or LoggingErrorReporter()
        self._pipeline = None

    def use(self, fn: Middleware) -> 'Application':
        """Append a middleware; returns the application for chaining.

        Raises:
            TypeError: If fn is not callable
        """
        if not callable(fn):
            raise TypeError('middleware must be a callable')
        logger.debug(f'use {getattr(fn, "__name__", repr(fn))}')
        self.middleware.append(fn)
        self._pipeline = None
        return self

    @property
    def pipeline(self) -> Callable[..., Awaitable[Any]]:
        """The composed middleware, rebuilt after the list changes."""
        if self._pipeline is None:
            self._pipeline = compose(self.middleware)
        return self._pipeline

    def callback(self) -> Callable[[Any, Any], Awaitable[None]]:
        """Return the request handler for a transport server.

        The handler takes a transport request/response pair and runs one
        full dispatch cycle.
        """
        # Compose eagerly so invalid middleware fails before any request
        self.pipeline

        async def handle_request(req, res) -> None:
            ctx = self.create_context(req, res)
            await self.handle_request(ctx, self.pipeline)

        return handle_request

    def create_context(self, req, res) -> Context:
        request = self.request_class(self, req, res)
        response = self.response_class(self, req, res)
        return self.context_class(self, request, response)

    async def handle_request(self, ctx: Context, pipeline) -> None:
        ctx.res.status_code = 404
        try:
            await pipeline(ctx)
            await self.respond(ctx)
        except Exception as err:
            await ctx.onerror(err)
        finally:
            await self.release(ctx)

    async def release(self, ctx: Context) -> None:
        """Close the stream bodies of a finished request.

        A body left in place with ``ctx.respond = False`` belongs to the
        middleware that writes it and stays open.
        """
        try:
            await ctx.response.close_streams(include_body=ctx.respond is not False)
        except Exception as err:
            self.report_error(err, ctx)

    async def respond(self, ctx: Context) -> None:
        """Write the final response state of ctx to the transport.

        Connection failures while writing are reported but not raised.
        """
        if ctx.respond is False or not ctx.writable:
            return

        try:
            await self._write_body(ctx)
        except ConnectionError as err:
            self.report_error(err, ctx)

    async def _write_body(self, ctx: Context) -> None:
        res = ctx.res
        response = ctx.response
        body = ctx.body
        code = ctx.status

        if code in statuses.EMPTY:
            ctx.body = None
            await res.end()
            return

        if ctx.method == 'HEAD':
            if not res.headers_sent and not response.has('Content-Length'):
                length = response.length
                if isinstance(length, int):
                    ctx.length = length
            await res.end()
            return

        if body is None:
            if response.explicit_null_body:
                response.remove('Content-Type')
                response.remove('Transfer-Encoding')
                ctx.length = 0
                await res.end()
                return

            if ctx.req.http_version_major >= 2:
                text = str(code)
            else:
                text = ctx.message or str(code)
            payload = text.encode('utf-8')
            if not res.headers_sent:
                ctx.type = 'text'
                ctx.length = len(payload)
            await res.end(payload)
            return

        if isinstance(body, (bytes, bytearray, memoryview)):
            await res.end(bytes(body))
            return

        if isinstance(body, str):
            await res.end(body.encode('utf-8'))
            return

        if is_stream(body):
            await self._pipe(body, res)
            return

        payload = dump_json(body).encode('utf-8')
        if not res.headers_sent:
            ctx.length = len(payload)
        await res.end(payload)

    async def _pipe(self, stream, res) -> None:
        """Copy a stream body to the transport until it is exhausted."""
        if hasattr(stream, '__aiter__'):
            async for chunk in stream:
                if not res.writable:
                    break
                await res.write(chunk.encode('utf-8') if isinstance(chunk, str) else chunk)
        else:
            while res.writable:
                chunk = stream.read(STREAM_CHUNK_SIZE)
                if inspect.isawaitable(chunk):
                    chunk = await chunk
                if not chunk:
                    break
                await res.write(chunk.encode('utf-8') if isinstance(chunk, str) else chunk)
        await res.end()

    def report_error(self, err: BaseException, ctx: Optional[Context] = None) -> None:
        """Send one failure to the error reporting channel.

        A failing reporter is logged and otherwise ignored.
        """
        try:
            self.error_reporter(err, ctx)
        except Exception:
            logger.exception(f'Error reporter failed while reporting {err!r}')

    def listen(self, host: str = '127.0.0.1', port: int = 8000, **server_options: Any):
        """Serve this application over HTTP until shut down.

        Args:
            host: Host address to bind to
            port: Port number to listen on
            **server_options: Extra HTTPServer arguments

        Returns:
            The HTTPServer after it stopped
        """
        from ..httptools_server import HTTPServer

        server = HTTPServer(self.callback(), host, port, **server_options)
        server.run()
        return server

    def to_json(self) -> Dict[str, Any]:
        return {
            'subdomain_offset': self.config.subdomain_offset,
            'proxy': self.config.proxy,
            'env': self.config.env,
        }

    inspect = to_json

    def __repr__(self) -> str:
        return f'<Application env={self.config.env} middleware={len(self.middleware)}>'
