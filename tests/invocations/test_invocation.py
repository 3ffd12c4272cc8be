import asyncio
import contextvars
import functools
import threading

import pytest

from kubehook._core.actions.invocation import invoke, is_async_fn

some_var = contextvars.ContextVar('some_var', default=None)


def sync_fn(**kwargs):
    return dict(kwargs, thread=threading.current_thread(), var=some_var.get())


async def async_fn(**kwargs):
    return dict(kwargs, thread=threading.current_thread(), var=some_var.get())


def partials(fn, n):
    partial = fn
    for _ in range(n):
        partial = functools.partial(partial)
    return partial


def wrappers(fn, n):
    wrapper = fn
    for _ in range(n):
        @functools.wraps(wrapper)
        def wrapper(*args, wrapper=wrapper, **kwargs):
            return wrapper(*args, **kwargs)
    return wrapper


@pytest.mark.parametrize('fn, expected', [
    pytest.param(None, False, id='none'),
    pytest.param(sync_fn, False, id='sync'),
    pytest.param(async_fn, True, id='async'),
    pytest.param(partials(sync_fn, 3), False, id='sync-partials'),
    pytest.param(partials(async_fn, 3), True, id='async-partials'),
    pytest.param(wrappers(sync_fn, 3), False, id='sync-wrappers'),
    pytest.param(wrappers(async_fn, 3), True, id='async-wrappers'),
    pytest.param(lambda **_: None, False, id='lambda'),
])
def test_detection(fn, expected):
    assert is_async_fn(fn) is expected


async def test_async_fns_run_in_the_loop():
    result = await invoke(async_fn, kwargs={'a': 1})
    assert result['a'] == 1
    assert result['thread'] is threading.current_thread()


async def test_sync_fns_run_in_threads():
    result = await invoke(sync_fn, kwargs={'a': 1})
    assert result['a'] == 1
    assert result['thread'] is not threading.current_thread()


async def test_context_vars_are_carried_into_threads():
    token = some_var.set('value')
    try:
        result = await invoke(sync_fn)
    finally:
        some_var.reset(token)
    assert result['var'] == 'value'


@pytest.mark.parametrize('fn', [sync_fn, async_fn, partials(sync_fn, 2), partials(async_fn, 2)])
async def test_no_kwargs(fn):
    result = await invoke(fn)
    assert set(result) == {'thread', 'var'}


async def test_errors_are_propagated():
    def fn(**_):
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await invoke(fn)


async def test_sync_fns_are_not_orphaned_on_cancellation():
    event = threading.Event()
    finished = []

    def fn(**_):
        event.wait(timeout=1.0)
        finished.append(True)

    task = asyncio.create_task(invoke(fn))
    await asyncio.sleep(0.05)
    task.cancel()
    await asyncio.sleep(0.05)
    assert not task.done()

    event.set()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert finished == [True]
