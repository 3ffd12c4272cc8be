"""
The conversion of the objects between the versions of their kinds.

The conversions are always done through the hub version of the kind:
first, the source object is converted to the hub, then the hub is converted
to the desired version. Adding a new version therefore requires only
the conversions to & from the hub, not to & from all other versions.
If either the source or the desired version is the hub, that hop is skipped.

The objects of one review are converted in order, and the first failure
fails the whole review: no partial results are returned.
"""
from collections.abc import Mapping
from typing import Any

import pydantic

from kubehook._cogs.helpers import typedefs
from kubehook._cogs.structs import bodies, gvks
from kubehook._core.engines import errors
from kubehook._core.intents import contexts, registries, resources


def convert_review(
        request: Mapping[str, Any],
        *,
        conversions: Mapping[gvks.GroupKind, registries.GroupKindConversion],
        logger: typedefs.Logger,
) -> dict[str, Any]:
    """
    Convert all the objects of the conversion review; build the response.

    Unlike the admission reviews, the failures are reported in the review's
    ``result`` rather than in the status of the admission response.
    """
    payload = request.get('request') or {}
    uid = payload.get('uid', '')
    desired = payload.get('desiredAPIVersion', '')
    objects = payload.get('objects') or []
    converted: list[bodies.RawBody] = []
    try:
        if not isinstance(desired, str):
            raise errors.ConversionError(f"malformed desired API version: {desired!r}")
        if not isinstance(objects, list):
            raise errors.ConversionError("malformed objects: not a list")
        for obj in objects:
            converted.append(convert(obj, desired, conversions=conversions))
    except errors.ConversionError as e:
        logger.error(f"Conversion to {desired} has failed: {e}")
        result = {'status': 'Failure', 'message': str(e)}
        converted = []
    else:
        result = {'status': 'Success'}

    return {
        'apiVersion': request.get('apiVersion', 'apiextensions.k8s.io/v1'),
        'kind': request.get('kind', 'ConversionReview'),
        'response': {
            'uid': uid,
            'convertedObjects': converted,
            'result': result,
        },
    }


def convert(
        obj: Mapping[str, Any],
        desired_api_version: str,
        *,
        conversions: Mapping[gvks.GroupKind, registries.GroupKindConversion],
) -> bodies.RawBody:
    """
    Convert one object to the desired API version via the hub version.
    """
    if not isinstance(obj, Mapping):
        raise errors.ConversionError("cannot decode incoming object: not an object")
    api_version, kind = obj.get('apiVersion', ''), obj.get('kind', '')
    if not isinstance(api_version, str) or not isinstance(kind, str):
        raise errors.ConversionError("cannot decode incoming object: malformed apiVersion or kind")
    source = gvks.GroupVersionKind.from_api_version(api_version, kind)
    target = gvks.GroupVersionKind.from_api_version(desired_api_version, source.kind)
    conversion = conversions.get(source.group_kind)
    if conversion is None:
        raise errors.ConversionError(f"no conversion support for type {source.group_kind}")
    if target.group != source.group:
        raise errors.ConversionError(f"incoming object's group {source.group!r} "
                                     f"does not match the desired group {target.group!r}")

    source_cls = conversion.zygotes.get(source.version)
    target_cls = conversion.zygotes.get(target.version)
    hub_cls = conversion.zygotes.get(conversion.hub_version)
    if source_cls is None:
        raise errors.ConversionError(f"unknown version {source.version!r} of the input "
                                     f"for type {source.group_kind}")
    if target_cls is None:
        raise errors.ConversionError(f"unknown version {target.version!r} of the output "
                                     f"for type {source.group_kind}")
    if hub_cls is None:
        raise errors.ConversionError(f"unknown hub version {conversion.hub_version!r} "
                                     f"for type {source.group_kind}")

    # The conversions are not admission requests, but the resources still need a context.
    context = contexts.RequestContext(operation='UPDATE')
    try:
        source_obj = resources.unmarshal(source_cls, obj)
    except pydantic.ValidationError as e:
        raise errors.ConversionError(f"cannot decode incoming object: {e}") from e

    try:
        if source.version == conversion.hub_version:
            hub_obj = source_obj
        else:
            hub_obj = hub_cls.model_construct()
            _require_convertible(source_obj).convert_to(context, hub_obj)

        if target.version == conversion.hub_version:
            target_obj = hub_obj
        else:
            target_obj = target_cls.model_construct()
            _require_convertible(target_obj).convert_from(context, hub_obj)

        target_obj.api_version = target.api_version
        target_obj.kind = target.kind
        if isinstance(target_obj, resources.Defaultable):
            target_obj.set_defaults(context)
    except errors.ConversionError:
        raise
    except Exception as e:
        raise errors.ConversionError(f"conversion failed to version {target.version} "
                                     f"for type {source.group_kind}: {e}") from e

    # The hub & target objects are constructed without validation; the results are re-checked.
    result = resources.marshal(target_obj)
    try:
        resources.unmarshal(target_cls, result)
    except pydantic.ValidationError as e:
        raise errors.ConversionError(f"invalid result of conversion to version {target.version} "
                                     f"for type {source.group_kind}: {e}") from e
    return result


def _require_convertible(obj: resources.Resource) -> resources.Convertible:
    if not isinstance(obj, resources.Convertible):
        raise errors.ConversionError(f"{type(obj).__name__} cannot be converted via the hub")
    return obj
