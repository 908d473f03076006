"""
Utility functions for server configuration and operation.

This module provides core functionality for:
- Logging setup (plain text for operators, JSON for access logs)
- Event loop setup and optimization with uvloop
- Socket configuration and TCP optimization
- Server kwargs generation for different platforms
"""

import asyncio
import logging
import socket
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter


def configure_logging(level=logging.INFO, log_file=None, name="kora", json_format=False):
    """Configure a logger for the framework.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to log file
        name: Logger name
        json_format: Emit one JSON object per record instead of text

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Create formatter
    if json_format:
        formatter = JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )

    # Add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Add file handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Default logger instances
default_logger = configure_logging()
access_logger = configure_logging(name="kora.access", json_format=True)
access_logger.propagate = False

logger = logging.getLogger(__name__)

# Try to import uvloop for better performance on Linux/macOS
try:
    import uvloop

    UVLOOP_AVAILABLE = True
except ImportError:
    UVLOOP_AVAILABLE = False


class ServerConfigError(Exception):
    """Custom exception for server configuration errors"""

    pass


def setup_uvloop() -> None:
    """Configure uvloop for improved event loop performance.

    Attempts to set up uvloop as the event loop policy if:
    1. uvloop is installed
    2. Running on a compatible platform (not Windows)

    Raises:
        ServerConfigError: If uvloop setup fails
    """
    if not UVLOOP_AVAILABLE or sys.platform == "win32":
        logger.info("uvloop not available, using the default event loop")
        return

    try:
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        logger.info("Using uvloop event loop")
    except Exception as e:
        logger.error(f"Failed to setup uvloop: {e}")
        raise ServerConfigError("Failed to initialize event loop") from e


def configure_client_socket(writer) -> None:
    """Apply TCP options to an accepted client connection.

    Non-TCP transports (or platforms rejecting an option) are left as-is.
    """
    sock = writer.get_extra_info("socket")
    if sock is None:
        return
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    except OSError as e:
        logger.debug(f"Could not set client socket options: {e}")


def get_server_kwargs(backlog: int = 2048) -> Dict[str, Any]:
    """Get platform-specific server configuration arguments.

    Returns:
        Dict containing asyncio.start_server kwargs optimized for
        the current platform and environment.
    """
    kwargs: Dict[str, Any] = {
        "reuse_address": True,
        "backlog": backlog,
        "start_serving": True,
    }

    if hasattr(socket, "SO_REUSEPORT") and sys.platform != "win32":
        kwargs["reuse_port"] = True

    return kwargs


def access_log_payload(
    method: str,
    path: str,
    status: int,
    length: int,
    duration: float,
    client: str,
    request_id: Optional[str],
) -> Dict[str, Any]:
    return {
        "method": method,
        "path": path,
        "status": status,
        "length": length,
        "duration_s": round(duration, 6),
        "client": client,
        "request_id": request_id,
    }
