"""
Informers: the in-memory caches of the objects, kept up to date by watching.

An informer lists & watches the objects of one resource kind (optionally
narrowed by a namespace & a field selector), stores their latest known
state, and notifies the handlers about every change of every object.

The informer is "synced" once its initial listing is over. The admission
requests & the reconcilers rely on the caches, so they wait for all the
informers to be synced (see the ``synced`` toggle set in the runner).

The handlers are notified about the keys of the objects, not the objects:
the state is always taken from the cache by the consumers when they process
the keys, so the notifications can be deduplicated in the work queues.
"""
import asyncio
import logging
from collections.abc import Callable, Iterator

from kubehook._cogs.aiokits import aiotoggles
from kubehook._cogs.clients import watching
from kubehook._cogs.configs import configuration
from kubehook._cogs.structs import bodies, references
from kubehook._core.reactor import leadership

logger = logging.getLogger(__name__)

EventHandler = Callable[[leadership.ObjectKey], None]


def get_key(body: bodies.RawBody) -> leadership.ObjectKey:
    return leadership.ObjectKey(bodies.get_namespace(body), bodies.get_name(body) or '')


class Informer:

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            resource: references.Resource,
            namespace: references.Namespace = None,
            field_selector: str | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.resource = resource
        self.namespace = namespace
        self.field_selector = field_selector
        self._store: dict[leadership.ObjectKey, bodies.RawBody] = {}
        self._handlers: list[EventHandler] = []

    def __repr__(self) -> str:
        where = f'in {self.namespace!r}' if self.namespace is not None else 'cluster-wide'
        return f'<{self.__class__.__name__}: {self.resource} {where}: {len(self._store)} objects>'

    def __iter__(self) -> Iterator[leadership.ObjectKey]:
        return iter(list(self._store))

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: leadership.ObjectKey) -> bodies.RawBody | None:
        """
        Get the latest known state of the object, if it exists.

        The returned object is shared with the cache and must not be modified.
        """
        return self._store.get(key)

    def add_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def notify(self, key: leadership.ObjectKey) -> None:
        for handler in self._handlers:
            handler(key)

    async def run(
            self,
            *,
            synced: aiotoggles.Toggle | None = None,
            _iterations: int | None = None,  # used in tests/mocks/fixtures
    ) -> None:
        """
        Keep the cache in sync with the cluster until cancelled.

        On every (re-)listing, the objects that were not listed are considered
        deleted while the watch-stream was disconnected, and are removed.
        """
        listed: set[leadership.ObjectKey] = set()
        stream = watching.infinite_watch(
            settings=self.settings,
            resource=self.resource,
            namespace=self.namespace,
            field_selector=self.field_selector,
            _iterations=_iterations,
        )
        async for raw_event in stream:
            if raw_event is watching.Bookmark.LISTED:
                for key in set(self._store) - listed:
                    del self._store[key]
                    self.notify(key)
                listed.clear()
                if synced is not None:
                    await synced.turn_to(True)
                continue

            if isinstance(raw_event, watching.Bookmark):
                continue

            body = raw_event['object']
            key = get_key(body)
            if raw_event['type'] is None:
                listed.add(key)
            if raw_event['type'] == 'DELETED':
                self._store.pop(key, None)
            else:
                self._store[key] = body
            self.notify(key)

    async def resync(self, interval: float) -> None:
        """
        Re-notify the handlers about all the cached objects periodically.
        """
        while True:
            await asyncio.sleep(interval)
            logger.debug(f"Resyncing {len(self._store)} objects of {self.resource}.")
            for key in self:
                self.notify(key)
