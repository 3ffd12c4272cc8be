"""
Invoking the callbacks, including the kwargs preparation.

Both sync & async functions are supported, so as their partials.
Also, decorated wrappers and lambdas are recognized.
All of this goes via the same invocation logic and protocol.
"""
import asyncio
import contextvars
import functools
import inspect
from collections.abc import Callable, Coroutine, Mapping
from typing import Any, TypeVar

# The callback can be a sync fn with the result, or an async fn returning a coroutine.
_R = TypeVar('_R')
SyncOrAsync = _R | Coroutine[None, None, _R]

# A generic sync-or-async callable with no args/kwargs checks (unlike in protocols).
Invokable = Callable[..., SyncOrAsync[object | None]]


async def invoke(
        fn: Invokable,
        *,
        kwargs: Mapping[str, Any] | None = None,
) -> Any:
    """
    Invoke a single function, but safely for the main asyncio process.

    The function is expected to accept ``**kwargs`` for the args that it does
    not use: for forward compatibility with the new features.

    The synchronous functions are executed in the default executor (threads),
    thus making them non-blocking for the admission requests served in
    the same event loop. The context variables are carried into the threads.
    """
    kwargs = {} if kwargs is None else kwargs
    if is_async_fn(fn):
        result = await fn(**kwargs)
    else:
        real_fn = functools.partial(fn, **kwargs)

        # Copy the asyncio context from the current thread to the callback's thread.
        context = contextvars.copy_context()
        real_fn = functools.partial(context.run, real_fn)

        # Prevent orphaned threads on the request cancellation: the request is stuck until
        # the thread exits, and only then the cancellation is re-raised (for consistency).
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, real_fn)
        cancellation: asyncio.CancelledError | None = None
        while not future.done():
            try:
                await asyncio.shield(future)  # slightly expensive: creates tasks
            except asyncio.CancelledError as e:
                cancellation = e
        if cancellation is not None:
            raise cancellation
        result = future.result()

    return result


def is_async_fn(
        fn: Invokable | None,
) -> bool:
    if fn is None:
        return False
    elif isinstance(fn, functools.partial):
        return is_async_fn(fn.func)
    elif hasattr(fn, '__wrapped__'):  # @functools.wraps()
        return is_async_fn(fn.__wrapped__)
    else:
        return inspect.iscoroutinefunction(fn)
