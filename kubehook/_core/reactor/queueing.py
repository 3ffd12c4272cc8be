"""
The work queue of the reconcilers: deduplicated, exclusive, rate-limited.

Unlike the watch-events, which are multiplexed by the informers and are not
queued anywhere, the reconciliation requests are queued by their keys only.
The same key added many times before it is processed is processed once.

The keys are processed exclusively: the same key is never given to two
workers at the same time. If the key is re-added while being processed,
it is marked as "dirty" and is given to a worker again after the current
processing is done, so that the latest state is always reconciled.

The failed keys are re-added with an exponential backoff
(see :class:`QueueingSettings <kubehook._cogs.configs.configuration.QueueingSettings>`)
until they succeed, at which moment the backoff is forgotten.
"""
import asyncio
import collections
import enum
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

from kubehook._cogs.aiokits import aiotasks
from kubehook._cogs.configs import configuration

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)


# An end-of-stream marker returned to the workers when the queue is shut down.
class EOS(enum.Enum):
    token = enum.auto()


class WorkQueue(Generic[K]):
    """
    A queue of keys to be processed by the workers.

    The queue is a synchronous object (no awaiting is needed to add the keys),
    so that it can be fed from the informers' event handlers & timers.
    Only the getting of the keys by the workers is awaitable.
    """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            name: str | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings
        self._name = name
        self._ready: collections.deque[K] = collections.deque()
        self._dirty: set[K] = set()
        self._processing: set[K] = set()
        self._failures: dict[K, int] = {}
        self._delayed: dict[K, asyncio.TimerHandle] = {}
        self._wakeup = asyncio.Event()
        self._closed = False

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self._name!r}: {len(self._ready)} ready>'

    def __len__(self) -> int:
        return len(self._ready)

    @property
    def closed(self) -> bool:
        return self._closed

    def add(self, key: K) -> None:
        """ Queue the key for processing, unless it is already queued. """
        if self._closed or key in self._dirty:
            return
        self._dirty.add(key)
        if key not in self._processing:
            self._ready.append(key)
            self._wakeup.set()

    def add_after(self, key: K, delay: float) -> None:
        """
        Queue the key after a delay. If already delayed, the earliest wins.
        """
        if self._closed:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        handle = self._delayed.get(key)
        if handle is not None and handle.when() <= when:
            return
        if handle is not None:
            handle.cancel()
        self._delayed[key] = loop.call_at(when, self._fire, key)

    def add_rate_limited(self, key: K) -> float:
        """
        Queue the key with the exponential backoff; return the delay used.
        """
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(self._settings.queueing.base_delay * 2 ** failures,
                    self._settings.queueing.max_delay)
        self.add_after(key, delay)
        return delay

    def forget(self, key: K) -> None:
        """ Reset the backoff of the key, e.g. after a successful processing. """
        self._failures.pop(key, None)

    def num_requeues(self, key: K) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> K | EOS:
        """
        Wait for the next key and mark it as being processed.

        Every key got here must be marked as done with :meth:`done`.
        Once the queue is shut down, all workers get the end-of-stream marker.
        """
        while not self._ready:
            if self._closed:
                return EOS.token
            self._wakeup.clear()
            await self._wakeup.wait()
        key = self._ready.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: K) -> None:
        """ Mark the key as processed; requeue it if it was re-added meanwhile. """
        self._processing.discard(key)
        if key in self._dirty and not self._closed:
            self._ready.append(key)
            self._wakeup.set()

    def shutdown(self) -> None:
        """ Stop accepting the keys, and release the waiting workers. """
        self._closed = True
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        self._ready.clear()
        self._wakeup.set()

    def _fire(self, key: K) -> None:
        self._delayed.pop(key, None)
        self.add(key)


async def worker(
        queue: WorkQueue[K],
        *,
        processor: Callable[[K], Awaitable[None]],
        name: str,
) -> None:
    """
    Process the keys from the queue one by one until the queue is shut down.

    The errors of the processor are not escalated: they are logged, and
    the key is retried later with the backoff. Only the cancellations stop
    the worker.
    """
    while True:
        key = await queue.get()
        if key is EOS.token:
            break

        try:
            await processor(key)
        except Exception as e:
            delay = queue.add_rate_limited(key)
            logger.error(f"{name.capitalize()} has failed for {key!r}, "
                         f"will retry in {delay:.3f}s: {e}")
        else:
            queue.forget(key)
        finally:
            queue.done(key)


async def run_workers(
        queue: WorkQueue[K],
        *,
        processor: Callable[[K], Awaitable[None]],
        settings: configuration.OperatorSettings,
        name: str,
) -> None:
    """
    Run several workers for the same queue until they are all stopped.

    On cancellation, the queue is shut down, and the workers are given some
    time to finish the keys in processing before they are cancelled too.
    """
    tasks = [
        aiotasks.create_guarded_task(
            name=f"{name} worker #{idx}",
            coro=worker(queue, processor=processor, name=name),
            finishable=True,
            logger=logger,
        )
        for idx in range(max(1, settings.queueing.worker_limit))
    ]
    try:
        await aiotasks.wait(tasks)
        await aiotasks.reraise(tasks)
    finally:
        queue.shutdown()
        _, pending = await aiotasks.wait(tasks, timeout=settings.queueing.exit_timeout)
        await aiotasks.stop(pending, title=f"{name} worker", logger=logger)
