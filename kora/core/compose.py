"""
Middleware composition.

compose() turns an ordered sequence of middleware into one callable that
runs them in onion order: each middleware receives the context and a
``call_next`` continuation that runs the rest of the pipeline, and its code
after ``await call_next()`` runs only once everything downstream finished.
"""

import functools
import inspect
from typing import Any, Awaitable, Callable, Optional, Sequence

from .errors import MiddlewareContractError

CallNext = Callable[[], Awaitable[Any]]
Middleware = Callable[[Any, CallNext], Any]


def compose(middleware: Sequence[Middleware]) -> Callable[..., Awaitable[Any]]:
    """Compose middleware into a single coroutine function.

    Args:
        middleware: List or tuple of callables ``(ctx, call_next)``. A
            middleware may return a plain value or an awaitable.

    Returns:
        ``composed(ctx, call_next=None)``; the optional ``call_next`` runs
        after the last middleware calls its own continuation.

    Raises:
        TypeError: If middleware is not a list/tuple of callables
    """
    if not isinstance(middleware, (list, tuple)):
        raise TypeError('Middleware stack must be a list or tuple')
    for fn in middleware:
        if not callable(fn):
            raise TypeError('Middleware must be composed of callables')

    stack = tuple(middleware)

    async def composed(ctx, call_next: Optional[Middleware] = None) -> Any:
        index = -1

        async def invoke(fn: Middleware, i: int) -> Any:
            result = fn(ctx, functools.partial(dispatch, i + 1))
            if inspect.isawaitable(result):
                result = await result
            return result

        def dispatch(i: int) -> Awaitable[Any]:
            # The cursor moves when the continuation is called, not awaited
            nonlocal index
            if i <= index:
                raise MiddlewareContractError('call_next() called multiple times')
            index = i

            if i < len(stack):
                fn = stack[i]
            elif i == len(stack):
                fn = call_next
            else:
                fn = None
            if fn is None:
                return _done()
            return invoke(fn, i)

        return await dispatch(0)

    return composed


async def _done() -> None:
    return None
