"""
Registries of the resources & callbacks served by the admission webhooks.

Unlike in the decorator-based frameworks, nothing is registered implicitly
on import. The registries are built explicitly from the mappings of the API
identities (GVKs) to the resource classes and to the callbacks, once on
the operator's startup, and are never changed afterwards: the in-flight
admission requests and the reconcilers see the same registries always.
"""
import dataclasses
import types
from collections.abc import Iterator, Mapping

from kubehook._cogs.structs import gvks, reviews
from kubehook._core.intents import callbacks, resources


class HandlerRegistry(Mapping[gvks.GroupVersionKind, type[resources.Resource]]):
    """
    An immutable mapping of the API identities to the resource classes.

    The iteration is always in the order of groups, versions, and kinds,
    so that everything built from the registry (e.g. the rules of the webhook
    configurations) is stable regardless of the order of declaration.
    """

    def __init__(
            self,
            handlers: Mapping[gvks.GroupVersionKind, type[resources.Resource]] | None = None,
    ) -> None:
        super().__init__()
        checked: dict[gvks.GroupVersionKind, type[resources.Resource]] = {}
        for gvk, cls in sorted((handlers or {}).items()):
            if not isinstance(cls, type) or not issubclass(cls, resources.Resource):
                raise TypeError(f"Only resource classes can be registered, got {cls!r} for {gvk}.")
            checked[gvks.GroupVersionKind(*gvk)] = cls
        self._handlers = types.MappingProxyType(checked)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({dict(self._handlers)!r})'

    def __getitem__(self, gvk: gvks.GroupVersionKind) -> type[resources.Resource]:
        return self._handlers[gvk]

    def __iter__(self) -> Iterator[gvks.GroupVersionKind]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def kinds_for(self, capability: type) -> list[gvks.GroupVersionKind]:
        """ The identities of the resources with a specific capability (a protocol). """
        return [gvk for gvk, cls in self._handlers.items() if issubclass(cls, capability)]


class CallbackRegistry:
    """
    An immutable mapping of the API identities to the callbacks.

    At most one callback is registered per kind and per webhook type.
    """

    def __init__(
            self,
            entries: Mapping[gvks.GroupVersionKind, callbacks.Callback] | None = None,
    ) -> None:
        super().__init__()
        checked: dict[gvks.GroupVersionKind, callbacks.Callback] = {}
        for gvk, callback in sorted((entries or {}).items()):
            if not isinstance(callback, (callbacks.TypedCallback, callbacks.UnstructuredCallback)):
                raise TypeError(f"Callbacks must be either typed or unstructured, got {callback!r}.")
            checked[gvks.GroupVersionKind(*gvk)] = callback
        self._callbacks = types.MappingProxyType(checked)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({dict(self._callbacks)!r})'

    def __contains__(self, gvk: object) -> bool:
        return gvk in self._callbacks

    def __iter__(self) -> Iterator[gvks.GroupVersionKind]:
        return iter(self._callbacks)

    def __len__(self) -> int:
        return len(self._callbacks)

    def get(
            self,
            gvk: gvks.GroupVersionKind,
            operation: reviews.Operation,
    ) -> callbacks.Callback | None:
        """ The callback of the kind, but only if it is interested in the operation. """
        callback = self._callbacks.get(gvk)
        return callback if callback is not None and operation in callback.operations else None

    def operations_for(self, gvk: gvks.GroupVersionKind) -> frozenset[reviews.Operation]:
        callback = self._callbacks.get(gvk)
        return callback.operations if callback is not None else frozenset()


@dataclasses.dataclass(frozen=True)
class GroupKindConversion:
    """
    The conversion of one kind between its versions, through the hub version.

    ``zygotes`` map the versions (e.g. ``"v1"``) to the resource classes
    representing the kind in those versions, including the hub version.
    Every non-hub class must be :class:`Convertible` to & from the hub.
    """
    definition_name: str  # the CRD's name, e.g. "foos.example.com"
    hub_version: str
    zygotes: Mapping[str, type[resources.Resource]]

    def __post_init__(self) -> None:
        for version, cls in self.zygotes.items():
            if not isinstance(cls, type) or not issubclass(cls, resources.Resource):
                raise TypeError(f"Only resource classes can be zygotes, got {cls!r} for {version}.")
        object.__setattr__(self, 'zygotes', types.MappingProxyType(dict(self.zygotes)))


@dataclasses.dataclass(frozen=True)
class OperatorRegistry:
    """
    Everything served by one operator: the resources, callbacks, conversions.

    The resources are served by both the defaulting & validation webhooks.
    The callbacks are registered separately for each of these webhooks.
    The conversions are keyed by the group & kind, regardless of versions.
    """
    resources: HandlerRegistry = dataclasses.field(default_factory=HandlerRegistry)
    defaulting: CallbackRegistry = dataclasses.field(default_factory=CallbackRegistry)
    validation: CallbackRegistry = dataclasses.field(default_factory=CallbackRegistry)
    conversions: Mapping[gvks.GroupKind, GroupKindConversion] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        conversions = {gvks.GroupKind(*gk): conv for gk, conv in self.conversions.items()}
        object.__setattr__(self, 'conversions', types.MappingProxyType(conversions))
