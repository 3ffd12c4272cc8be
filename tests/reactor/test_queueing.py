import asyncio

import pytest

from kubehook._core.reactor.queueing import EOS, WorkQueue, run_workers, worker


@pytest.fixture()
def queue(settings):
    return WorkQueue(settings=settings, name='test')


async def test_empty_queue(queue):
    assert len(queue) == 0
    assert not queue.closed
    assert repr(queue) == "<WorkQueue: 'test': 0 ready>"


async def test_keys_are_deduplicated(queue):
    queue.add('a')
    queue.add('b')
    queue.add('a')
    assert len(queue) == 2
    assert await queue.get() == 'a'
    assert await queue.get() == 'b'
    assert len(queue) == 0


async def test_keys_in_processing_are_not_given_twice(queue):
    queue.add('a')
    key = await queue.get()
    queue.add('a')
    assert len(queue) == 0

    queue.done(key)
    assert len(queue) == 1
    assert await queue.get() == 'a'


async def test_processed_keys_are_not_requeued(queue):
    queue.add('a')
    key = await queue.get()
    queue.done(key)
    assert len(queue) == 0


async def test_getting_waits_for_keys(queue):
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0.01)
    assert not task.done()

    queue.add('a')
    assert await asyncio.wait_for(task, timeout=1.0) == 'a'


async def test_delayed_keys(queue):
    queue.add_after('a', 0.05)
    assert len(queue) == 0
    await asyncio.sleep(0.1)
    assert len(queue) == 1


async def test_delayed_keys_without_delay(queue):
    queue.add_after('a', 0)
    assert len(queue) == 1


async def test_earliest_delay_wins(queue):
    queue.add_after('a', 10)
    queue.add_after('a', 0.05)
    queue.add_after('a', 20)
    await asyncio.sleep(0.1)
    assert len(queue) == 1


async def test_rate_limited_delays_grow(queue, settings):
    settings.queueing.base_delay = 0.5
    settings.queueing.max_delay = 3.0
    delays = [queue.add_rate_limited('a') for _ in range(5)]
    assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]
    assert queue.num_requeues('a') == 5
    assert queue.num_requeues('b') == 0


async def test_forgetting_resets_the_backoff(queue, settings):
    settings.queueing.base_delay = 0.5
    queue.add_rate_limited('a')
    queue.add_rate_limited('a')
    queue.forget('a')
    assert queue.num_requeues('a') == 0
    assert queue.add_rate_limited('a') == 0.5


async def test_shutdown_releases_the_waiters(queue):
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0.01)
    queue.shutdown()
    assert await asyncio.wait_for(task, timeout=1.0) is EOS.token
    assert queue.closed


async def test_shutdown_drops_the_keys(queue):
    queue.add('a')
    queue.add_after('b', 0.01)
    queue.shutdown()
    await asyncio.sleep(0.05)
    assert len(queue) == 0
    assert await queue.get() is EOS.token


async def test_no_keys_are_accepted_after_shutdown(queue):
    queue.shutdown()
    queue.add('a')
    queue.add_after('b', 0.01)
    assert len(queue) == 0


async def test_worker_processes_until_shutdown(queue, mocker):
    processor = mocker.AsyncMock()
    queue.add('a')
    queue.add('b')
    task = asyncio.create_task(worker(queue, processor=processor, name='tester'))
    await asyncio.sleep(0.01)
    queue.shutdown()
    await asyncio.wait_for(task, timeout=1.0)
    assert processor.await_args_list == [mocker.call('a'), mocker.call('b')]


async def test_worker_retries_the_failures(queue, mocker, assert_logs):
    processor = mocker.AsyncMock(side_effect=[ValueError("boom"), None])
    queue.add('a')
    task = asyncio.create_task(worker(queue, processor=processor, name='tester'))
    await asyncio.sleep(0.1)
    queue.shutdown()
    await asyncio.wait_for(task, timeout=1.0)
    assert processor.await_count == 2
    assert queue.num_requeues('a') == 0
    assert_logs([r"Tester has failed for 'a', will retry in 0.005s: boom"])


async def test_run_workers_stop_on_cancellation(settings, mocker):
    settings.queueing.worker_limit = 3
    queue = WorkQueue(settings=settings, name='test')
    processor = mocker.AsyncMock()
    task = asyncio.create_task(run_workers(queue, processor=processor, settings=settings, name='tester'))
    queue.add('a')
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert queue.closed
    assert processor.await_args_list == [mocker.call('a')]
