"""
HTTP request parser using httptools for efficient parsing.

This module provides a robust HTTP request parser with:
- Strict size limits for security
- Proper error handling and validation
- Support for incremental parsing
- Conversion of the parsed request into an IncomingMessage
"""

from typing import Dict, Optional

import httptools

from .transport import IncomingMessage, SocketInfo


class HTTPParserError(Exception):
    """Custom exception for HTTP parsing errors"""
    pass


class HTTPParser:
    """Parses one HTTP/1.x request using httptools with validation.

    This parser implements callbacks from httptools.HttpRequestParser and manages
    the state of an HTTP request as it's being parsed.

    Constants:
        MAX_BODY_SIZE: Default maximum request body size (10MB)
        MAX_HEADER_SIZE: Maximum size per header value (8KB)
        MAX_HEADERS: Maximum number of headers per request (100)
        MAX_URL_SIZE: Maximum request target length (8KB)
    """
    MAX_BODY_SIZE = 10485760
    MAX_HEADER_SIZE = 8192
    MAX_HEADERS = 100
    MAX_URL_SIZE = 8192

    def __init__(self, body_limit: int = MAX_BODY_SIZE):
        self.body_limit = body_limit
        self.reset()
        self.parser = httptools.HttpRequestParser(self)

    def reset(self) -> None:
        """Reset parsed request state."""
        self.headers: Dict[str, str] = {}
        self.body = bytearray()
        self.url = b''
        self.method: Optional[str] = None
        self.http_version = '1.1'
        self.should_keep_alive = False
        self._headers_count = 0
        self._parsing_complete = False

    def on_message_begin(self) -> None:
        self.reset()

    def on_url(self, url: bytes) -> None:
        """Collect the request target; httptools may deliver it in pieces.

        Raises:
            HTTPParserError: If URL exceeds length limit
        """
        self.url += url
        if len(self.url) > self.MAX_URL_SIZE:
            raise HTTPParserError("URL too long")

    def on_header(self, name: bytes, value: bytes) -> None:
        """Process a single header from the request.

        Header names are lower-cased; repeated headers are joined with ', '.

        Raises:
            HTTPParserError: If header limits are exceeded or content is invalid
        """
        if self._headers_count >= self.MAX_HEADERS:
            raise HTTPParserError("Too many headers")

        try:
            name_str = name.decode('ascii').lower()
            value_str = value.decode('ascii')
        except UnicodeDecodeError:
            raise HTTPParserError("Invalid header encoding")

        if len(name_str) > 256:
            raise HTTPParserError("Header name too long")
        if len(value_str) > self.MAX_HEADER_SIZE:
            raise HTTPParserError("Header value too long")

        if name_str in self.headers:
            self.headers[name_str] = f'{self.headers[name_str]}, {value_str}'
        else:
            self.headers[name_str] = value_str
        self._headers_count += 1

    def on_headers_complete(self) -> None:
        self.method = self.parser.get_method().decode('ascii')
        self.http_version = self.parser.get_http_version()
        self.should_keep_alive = self.parser.should_keep_alive()

    def on_body(self, body: bytes) -> None:
        """Accumulate body data.

        Raises:
            HTTPParserError: If body exceeds the configured limit
        """
        if len(self.body) + len(body) > self.body_limit:
            raise HTTPParserError("Request body too large")
        self.body += body

    def on_message_complete(self) -> None:
        self._parsing_complete = True

    def feed_data(self, data: bytes) -> None:
        """Feed raw request data to the parser.

        Raises:
            HTTPParserError: If parsing fails
        """
        try:
            self.parser.feed_data(data)
        except httptools.HttpParserUpgrade:
            raise HTTPParserError("Protocol upgrade is not supported")
        except httptools.HttpParserError as e:
            raise HTTPParserError(f"Parser error: {e}") from e

    @property
    def complete(self) -> bool:
        return self._parsing_complete

    def to_message(self, socket: Optional[SocketInfo] = None) -> IncomingMessage:
        """Build the transport request from the parsed data."""
        return IncomingMessage(
            method=self.method or 'GET',
            url=self.url.decode('utf-8', errors='replace') or '/',
            headers=dict(self.headers),
            body=bytes(self.body),
            http_version=self.http_version,
            socket=socket,
        )
