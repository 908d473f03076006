"""
Raw transport request/response objects handed to the application.

IncomingMessage is the parsed inbound request; ServerResponse writes status,
headers and body to an asyncio StreamWriter. The middleware core only talks
to these through a narrow surface: read method/url/headers/body stream, set
status and headers, observe whether headers were sent, write and end.
"""

"""
Copyright 2025 Chris Bunting
File: transport.py | Purpose: Raw HTTP request/response transport objects
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-02 - Chris Bunting: Initial implementation
"""

import re
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, List, Optional, Tuple, Union

from . import statuses

HeaderValue = Union[str, List[str]]

# Status codes whose responses never carry a body. 205 is left out: clients
# still read its framing, so it is sent with an explicit Content-Length: 0.
NO_BODY_STATUSES = statuses.EMPTY - {205}

_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
INVALID_HEADER_CHAR = re.compile(r"[\r\n\x00]|[^\x00-\xff]")


@dataclass
class SocketInfo:
    """Connection details for one client socket."""
    remote_address: Optional[str] = None
    remote_port: Optional[int] = None
    encrypted: bool = False

    @classmethod
    def from_writer(cls, writer) -> 'SocketInfo':
        peer = writer.get_extra_info('peername')
        ssl_object = writer.get_extra_info('ssl_object')
        if peer:
            return cls(peer[0], peer[1], ssl_object is not None)
        return cls(encrypted=ssl_object is not None)

    @property
    def client(self) -> str:
        if self.remote_address is None:
            return 'unknown'
        return f'{self.remote_address}:{self.remote_port}'


class IncomingMessage:
    """Parsed inbound HTTP request.

    Attributes:
        method: Request method, upper-case
        url: Request target as received (path and query)
        headers: Header mapping with lower-cased names
        http_version: Protocol version string such as '1.1'
        stream: Readable body stream
        socket: Connection details of the client
    """

    def __init__(self,
                 method: str = 'GET',
                 url: str = '/',
                 headers: Optional[Dict[str, str]] = None,
                 body: bytes = b'',
                 http_version: str = '1.1',
                 socket: Optional[SocketInfo] = None):
        self.method = method
        self.url = url
        self.headers = headers if headers is not None else {}
        self.http_version = http_version
        self.stream = BytesIO(body)
        self.socket = socket or SocketInfo()

    @property
    def http_version_major(self) -> int:
        try:
            return int(self.http_version.split('.')[0])
        except (ValueError, AttributeError):
            return 1

    def __repr__(self) -> str:
        return f'<IncomingMessage {self.method} {self.url}>'


class ServerResponse:
    """Outbound HTTP/1.x response written to an asyncio StreamWriter.

    Headers are buffered until the first write (or an explicit
    flush_headers()). When no Content-Length is known at that point the body
    is sent with chunked transfer encoding. Writes after the response has
    finished or the connection closed are ignored.
    """

    def __init__(self,
                 writer,
                 *,
                 method: str = 'GET',
                 http_version: str = '1.1',
                 keep_alive: bool = True,
                 socket: Optional[SocketInfo] = None):
        self.writer = writer
        self.method = method
        self.http_version = http_version
        self.keep_alive = keep_alive
        self.socket = socket or SocketInfo.from_writer(writer)
        self.status_code = 200
        self.status_message = ''
        self.headers_sent = False
        self.finished = False
        self.destroyed = False
        self.bytes_written = 0
        self._headers: Dict[str, Tuple[str, HeaderValue]] = {}
        self._chunked = False

    # Header management

    def get_header(self, name: str) -> Optional[HeaderValue]:
        entry = self._headers.get(name.lower())
        return entry[1] if entry else None

    def set_header(self, name: str, value: HeaderValue) -> None:
        """Buffer a header; raises ValueError for names or values that would
        break the header block (CR, LF, NUL or non latin-1 characters)."""
        if not isinstance(name, str) or not _TOKEN.fullmatch(name):
            raise ValueError(f'Invalid header name: {name!r}')
        for item in (value if isinstance(value, list) else [value]):
            if INVALID_HEADER_CHAR.search(str(item)):
                raise ValueError(f'Invalid character in header {name!r}: {item!r}')
        self._headers[name.lower()] = (name, value)

    def remove_header(self, name: str) -> None:
        self._headers.pop(name.lower(), None)

    def has_header(self, name: str) -> bool:
        return name.lower() in self._headers

    def get_headers(self) -> Dict[str, HeaderValue]:
        return {key: value for key, (_, value) in self._headers.items()}

    def get_header_names(self) -> List[str]:
        return list(self._headers)

    # Writing

    @property
    def writable(self) -> bool:
        if self.finished or self.destroyed:
            return False
        return not self.writer.is_closing()

    @property
    def body_allowed(self) -> bool:
        return (self.method != 'HEAD'
                and self.status_code >= 200
                and self.status_code not in NO_BODY_STATUSES)

    def flush_headers(self, body_length: Optional[int] = None) -> None:
        """Write the status line and headers.

        Args:
            body_length: Length of the complete body, if known, used for
                Content-Length when none was set
        """
        if self.headers_sent or not self.writable:
            return

        framed = self.has_header('content-length') or self.has_header('transfer-encoding')
        if (body_length is not None and not framed
                and self.status_code >= 200
                and self.status_code not in NO_BODY_STATUSES):
            self.set_header('Content-Length', str(body_length))
        elif self.body_allowed and not framed:
            if self.http_version == '1.1':
                self.set_header('Transfer-Encoding', 'chunked')
            else:
                # HTTP/1.0 bodies without a length are delimited by close
                self.keep_alive = False

        encoding = self.get_header('transfer-encoding')
        self._chunked = (self.body_allowed and isinstance(encoding, str)
                         and 'chunked' in encoding.lower())

        connection = self.get_header('connection')
        if connection is None:
            self.set_header('Connection', 'keep-alive' if self.keep_alive else 'close')
        elif isinstance(connection, str) and connection.lower() == 'close':
            self.keep_alive = False

        reason = self.status_message or statuses.message(self.status_code) or ''
        lines = [f'HTTP/1.1 {self.status_code} {reason}\r\n']
        for name, value in self._headers.values():
            for item in (value if isinstance(value, list) else [value]):
                lines.append(f'{name}: {item}\r\n')
        lines.append('\r\n')

        self.writer.write(''.join(lines).encode('latin-1'))
        self.headers_sent = True

    async def write(self, chunk: Union[bytes, bytearray]) -> None:
        """Write a body chunk, sending headers first if needed."""
        if not self.writable:
            return
        if not self.headers_sent:
            self.flush_headers()
        if not chunk or not self.body_allowed:
            return

        self.bytes_written += len(chunk)
        if self._chunked:
            await self._send(f'{len(chunk):X}\r\n'.encode() + bytes(chunk) + b'\r\n')
        else:
            await self._send(bytes(chunk))

    async def end(self, chunk: Optional[Union[bytes, bytearray]] = None) -> None:
        """Finish the response, optionally writing a last chunk."""
        if not self.writable:
            return
        if not self.headers_sent:
            if chunk is not None:
                self.flush_headers(len(chunk))
            elif self.method == 'HEAD':
                # Length of a HEAD body is only known if set by the caller
                self.flush_headers()
            else:
                self.flush_headers(0)

        data = b''
        if chunk and self.body_allowed:
            self.bytes_written += len(chunk)
            if self._chunked:
                data = f'{len(chunk):X}\r\n'.encode() + bytes(chunk) + b'\r\n'
            else:
                data = bytes(chunk)
        if self._chunked:
            data += b'0\r\n\r\n'

        self.finished = True
        await self._send(data)

    def destroy(self) -> None:
        """Terminate the connection without completing the response."""
        if self.destroyed:
            return
        self.destroyed = True
        transport = getattr(self.writer, 'transport', None)
        if transport is not None:
            transport.abort()
        else:
            self.writer.close()

    async def _send(self, data: bytes) -> None:
        try:
            if data:
                self.writer.write(data)
            await self.writer.drain()
        except ConnectionError:
            self.destroyed = True
            raise

    def __repr__(self) -> str:
        return f'<ServerResponse {self.status_code} sent={self.headers_sent}>'
