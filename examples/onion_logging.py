"""
Middleware stack showing the onion order: response timing, error handling
and routing, served with Prometheus metrics on /metrics.

    python examples/onion_logging.py
    curl -i localhost:8000/users/tobi
"""

import time

from kora import Application, HttpError
from kora.core.server_utils import default_logger as logger

USERS = {"tobi": {"name": "Tobi", "species": "ferret"}}

app = Application()


async def response_time(ctx, call_next):
    start = time.perf_counter()
    await call_next()
    elapsed_ms = (time.perf_counter() - start) * 1000
    ctx.set("X-Response-Time", f"{elapsed_ms:.2f}ms")
    logger.info(f"{ctx.method} {ctx.url} -> {ctx.status} ({elapsed_ms:.2f}ms)")


async def json_errors(ctx, call_next):
    try:
        await call_next()
    except HttpError as e:
        ctx.status = e.status
        ctx.body = {"error": e.message if e.expose else "internal error"}


async def users(ctx, call_next):
    if not ctx.path.startswith("/users/"):
        return await call_next()

    name = ctx.path[len("/users/"):]
    ctx.assert_(name in USERS, 404, f"no user named {name!r}")
    ctx.body = USERS[name]


app.use(response_time).use(json_errors).use(users)

if __name__ == "__main__":
    app.listen("127.0.0.1", 8000, metrics_path="/metrics")
