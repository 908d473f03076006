"""
Core components: the middleware engine and its transport objects
"""

from .application import Application, ApplicationConfig, LoggingErrorReporter
from .compose import compose
from .context import Context, DELEGATED_PROPERTIES
from .errors import HttpError, KoraError, MiddlewareContractError
from .http_parser import HTTPParser, HTTPParserError
from .request import Request
from .response import Response
from .transport import IncomingMessage, ServerResponse, SocketInfo

# Expose public interface
__all__ = [
    "Application", "ApplicationConfig", "LoggingErrorReporter", "compose",
    "Context", "DELEGATED_PROPERTIES", "HttpError", "KoraError",
    "MiddlewareContractError", "HTTPParser", "HTTPParserError", "Request",
    "Response", "IncomingMessage", "ServerResponse", "SocketInfo",
]
