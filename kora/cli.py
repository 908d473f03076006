#!/usr/bin/env python3
"""
Command line entry point serving an Application.

Usage:
    kora package.module:app --host 0.0.0.0 --port 8080

The target may name an Application instance or a zero-argument factory
returning one.
"""

import argparse
import importlib
import logging
import sys
from typing import List, Optional

from .core.application import Application
from .core.server_utils import default_logger


def load_app(target: str) -> Application:
    """Import 'module:attribute' and return the Application it names.

    Raises:
        ValueError: If the target is malformed or does not name an Application
        ImportError: If the module cannot be imported
    """
    module_name, sep, attr = target.partition(':')
    if not sep or not module_name or not attr:
        raise ValueError("Application must be given as 'module:attribute'")

    module = importlib.import_module(module_name)
    try:
        app = getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'")

    if not isinstance(app, Application) and callable(app):
        app = app()
    if not isinstance(app, Application):
        raise ValueError(f"'{target}' is not an Application")
    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='kora', description='Serve a kora application')
    parser.add_argument('app', help="application as 'module:attribute'")
    parser.add_argument('--host', default='127.0.0.1', help='host address to bind to')
    parser.add_argument('--port', type=int, default=8000, help='port to listen on')
    parser.add_argument('--read-timeout', type=float, default=10.0,
                        help='per-read timeout in seconds')
    parser.add_argument('--max-requests', type=int, default=1000,
                        help='max requests per keep-alive connection')
    parser.add_argument('--metrics-path', default=None,
                        help='serve Prometheus metrics on this path')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    default_logger.setLevel(getattr(logging, args.log_level))

    try:
        app = load_app(args.app)
    except (ImportError, ValueError) as e:
        print(f"Error loading application: {e}", file=sys.stderr)
        return 1

    app.listen(
        args.host,
        args.port,
        read_timeout=args.read_timeout,
        max_requests=args.max_requests,
        metrics_path=args.metrics_path,
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
