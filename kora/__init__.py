from .core import (
    Application, ApplicationConfig, Context, HttpError, IncomingMessage, KoraError,
    MiddlewareContractError, Request, Response, ServerResponse, compose
)
from .httptools_server import HTTPServer

__version__ = '1.0.0'

__all__ = [
    # Middleware core
    'Application',
    'ApplicationConfig',
    'Context',
    'Request',
    'Response',
    'compose',

    # Errors
    'HttpError',
    'KoraError',
    'MiddlewareContractError',

    # Transport
    'HTTPServer',
    'IncomingMessage',
    'ServerResponse',
]
