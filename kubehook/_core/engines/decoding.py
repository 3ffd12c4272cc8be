"""
Decoding of the admission requests into the typed resources & contexts.

The resource class is looked up by the request's kind (group, version, kind),
and both the new & the old objects are decoded into the fresh instances of it.
The decoded old object becomes the baseline of the request's context.
"""
import dataclasses
from collections.abc import Mapping
from typing import Any

import pydantic

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import gvks
from kubehook._core.engines import errors
from kubehook._core.intents import contexts, descriptors, registries, resources


@dataclasses.dataclass(frozen=True)
class DecodedRequest:
    gvk: gvks.GroupVersionKind
    cls: type[resources.Resource]
    new: resources.Resource | None
    old: resources.Resource | None
    context: contexts.RequestContext


def get_gvk(payload: Mapping[str, Any]) -> gvks.GroupVersionKind:
    kind = payload.get('kind') or {}
    return gvks.GroupVersionKind(
        group=kind.get('group', ''),
        version=kind.get('version', ''),
        kind=kind.get('kind', ''),
    )


@dataclasses.dataclass(frozen=True)
class RequestDecoder:
    registry: registries.HandlerRegistry
    disallow_unknown_fields: bool = False

    def resolve(self, gvk: gvks.GroupVersionKind) -> type[resources.Resource]:
        cls = self.registry.get(gvk)
        if cls is None:
            raise errors.UnhandledKindError(f"unhandled kind: {gvk}")
        return cls

    def decode(
            self,
            cls: type[resources.Resource],
            raw: Any,
            *,
            side: str,
    ) -> resources.Resource:
        """
        Decode one side of the request (``"new"`` or ``"old"``) into a resource.
        """
        if not isinstance(raw, Mapping):
            raise errors.DecodeError(f"cannot decode incoming {side} object: not an object")
        if self.disallow_unknown_fields:
            unknown = list(descriptors.find_unknown_fields(cls, raw))
            if unknown:
                raise errors.DecodeError(f"cannot decode incoming {side} object: "
                                         f"unknown field \"{unknown[0]}\"")
        try:
            return resources.unmarshal(cls, raw)
        except pydantic.ValidationError as e:
            raise errors.DecodeError(f"cannot decode incoming {side} object: {e}") from e

    def decode_request(
            self,
            payload: Mapping[str, Any],
            *,
            client: Any = None,
            logger: typedefs.Logger | None = None,
    ) -> DecodedRequest:
        """
        Decode the whole request: the kind, both objects, and the context.
        """
        gvk = get_gvk(payload)
        cls = self.resolve(gvk)
        raw_new = payload.get('object')
        raw_old = payload.get('oldObject')
        if raw_new is None and raw_old is None:
            raise errors.DecodeError("cannot decode incoming object: neither new nor old is sent")

        new = self.decode(cls, raw_new, side='new') if raw_new is not None else None
        old = self.decode(cls, raw_old, side='old') if raw_old is not None else None
        context = contexts.build_context(payload, baseline=old, client=client, logger=logger)
        return DecodedRequest(gvk=gvk, cls=cls, new=new, old=old, context=context)
