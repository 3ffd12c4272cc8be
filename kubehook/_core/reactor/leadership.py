"""
Leader-awareness of the reconcilers.

In a multi-replica deployment of the webhooks, all replicas serve the
admission requests, but only one of them must write to the webhook
configurations at a time. The keys are split into buckets, and every
replica reconciles only the keys of the buckets it is promoted for.

The framework does not elect the leaders itself. In the standalone mode,
the reconcilers are promoted for the :class:`UniversalBucket` on startup.
Otherwise, an election function (e.g. a leader election via a lease)
is given the reconcilers as candidates (:class:`Candidate`), and promotes
or demotes them for the buckets it wins or loses.
"""
import logging
from collections.abc import Awaitable, Callable, Collection, Iterable
from typing import NamedTuple, Protocol

logger = logging.getLogger(__name__)


class ObjectKey(NamedTuple):
    """ A key of an object in the informers' caches & the work queues. """
    namespace: str | None
    name: str

    def __str__(self) -> str:
        return self.name if self.namespace is None else f'{self.namespace}/{self.name}'


class Bucket(Protocol):
    @property
    def name(self) -> str: ...

    def has(self, key: ObjectKey) -> bool: ...


class UniversalBucket:
    """ A bucket that owns all the keys. """

    @property
    def name(self) -> str:
        return 'universal'

    def has(self, key: ObjectKey) -> bool:
        return True


Enqueue = Callable[[Bucket, ObjectKey], None]


class LeaderAware:
    """
    A base for the reconcilers that process only the keys they lead for.

    On promotion, all the keys known to the reconciler (see :meth:`known_keys`)
    are enqueued for the newly owned bucket, so that the new leader catches up
    with the changes done while it was not leading. On demotion, the keys of
    that bucket are skipped from then on (but not cancelled if in processing).
    """

    def __init__(self) -> None:
        super().__init__()
        self._buckets: dict[str, Bucket] = {}

    def is_leader_for(self, key: ObjectKey) -> bool:
        return any(bucket.has(key) for bucket in self._buckets.values())

    def promote(self, bucket: Bucket, enqueue: Enqueue) -> None:
        logger.debug(f"{self.__class__.__name__} is promoted for the bucket {bucket.name!r}.")
        self._buckets[bucket.name] = bucket
        for key in self.known_keys():
            if bucket.has(key):
                enqueue(bucket, key)

    def demote(self, bucket: Bucket) -> None:
        logger.debug(f"{self.__class__.__name__} is demoted for the bucket {bucket.name!r}.")
        self._buckets.pop(bucket.name, None)

    def known_keys(self) -> Iterable[ObjectKey]:
        return ()


class Candidate(NamedTuple):
    """
    A reconciler as seen by the leader elections: with its own way of enqueueing.
    """
    reconciler: LeaderAware
    enqueue: Enqueue

    def promote(self, bucket: Bucket) -> None:
        self.reconciler.promote(bucket, self.enqueue)

    def demote(self, bucket: Bucket) -> None:
        self.reconciler.demote(bucket)


# An election runs for as long as the operator runs; promotes & demotes the candidates.
ElectionFn = Callable[[Collection[Candidate]], Awaitable[None]]
