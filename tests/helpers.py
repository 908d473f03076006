"""
Shared test helpers: mock streams and context factories.
"""

from typing import Dict, List, Optional, Tuple

from kora.core.application import Application
from kora.core.transport import IncomingMessage, ServerResponse, SocketInfo


class MockStreamWriter:
    def __init__(self, fail_on_drain: Optional[BaseException] = None):
        self.buffer = []
        self.closed = False
        self.transport = None
        self.fail_on_drain = fail_on_drain

    def write(self, data):
        self.buffer.append(data)

    async def drain(self):
        if self.fail_on_drain is not None:
            raise self.fail_on_drain

    def close(self):
        self.closed = True

    def is_closing(self):
        return self.closed

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        return ('127.0.0.1', 8000) if name == 'peername' else default

    @property
    def output(self) -> bytes:
        return b''.join(self.buffer)


class MockStreamReader:
    """Returns one queued chunk per read() call, then EOF."""

    def __init__(self, *chunks: bytes):
        self.chunks = list(chunks)

    async def read(self, n=-1):
        if not self.chunks:
            return b''
        return self.chunks.pop(0)


def make_request(method: str = 'GET',
                 url: str = '/',
                 headers: Optional[Dict[str, str]] = None,
                 body: bytes = b'',
                 http_version: str = '1.1',
                 socket: Optional[SocketInfo] = None) -> IncomingMessage:
    return IncomingMessage(method, url, headers if headers is not None else {},
                           body, http_version, socket)


def create_context(req=None, res=None, app=None, **options):
    app = app or Application(**options)
    req = req or make_request()
    res = res or ServerResponse(MockStreamWriter(), method=req.method)
    return app.create_context(req, res)


def request(req=None, **options):
    return create_context(req, **options).request


def response(req=None, **options):
    return create_context(req, **options).response


def decode_chunked(data: bytes) -> bytes:
    body = b''
    while data:
        size_line, _, rest = data.partition(b'\r\n')
        size = int(size_line, 16)
        if size == 0:
            break
        body += rest[:size]
        data = rest[size + 2:]
    return body


def split_response(raw: bytes) -> Tuple[str, Dict[str, str], bytes]:
    """Split raw response bytes into status line, headers and decoded body."""
    head, _, body = raw.partition(b'\r\n\r\n')
    lines = head.decode('latin-1').split('\r\n')
    headers: Dict[str, str] = {}
    for line in lines[1:]:
        name, _, value = line.partition(':')
        headers[name.strip().lower()] = value.strip()
    if headers.get('transfer-encoding') == 'chunked':
        body = decode_chunked(body)
    return lines[0], headers, body


async def dispatch(app: Application,
                   method: str = 'GET',
                   url: str = '/',
                   headers: Optional[Dict[str, str]] = None,
                   body: bytes = b'',
                   writer: Optional[MockStreamWriter] = None):
    """Run one request through app.callback() against a mock writer."""
    writer = writer or MockStreamWriter()
    req = make_request(method, url, headers, body)
    res = ServerResponse(writer, method=method)
    await app.callback()(req, res)
    return writer, res


demo_app = Application()


def make_app() -> Application:
    return Application(env='test')


def record(log: List[str], name: str):
    """Middleware logging entry and resume-after-continuation."""
    async def middleware(ctx, call_next):
        log.append(f'enter {name}')
        await call_next()
        log.append(f'resume {name}')
    middleware.__name__ = f'record_{name}'
    return middleware


class ClosableChunks:
    """Async iterable body that records whether it was closed."""

    def __init__(self, *chunks: bytes):
        self.chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed or not self.chunks:
            raise StopAsyncIteration
        return self.chunks.pop(0)

    async def aclose(self):
        self.closed = True
