"""
Field descriptors: the declared structure of the resource models.

The descriptors are computed once per model class from its declared fields,
and are then used to walk the objects without any runtime type guessing:
to detect the unknown fields in the incoming objects, and to find
the deprecated fields in the decoded resources.

A field is deprecated if its name starts with ``deprecated_``, or if it is
declared with ``json_schema_extra={'deprecated': True}``.
"""
import dataclasses
import enum
import functools
import types
import typing
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

import pydantic

DEPRECATED_PREFIX = 'deprecated_'


class Shape(enum.Enum):
    SCALAR = enum.auto()
    MODEL = enum.auto()
    LIST = enum.auto()
    MAP = enum.auto()


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    name: str  # as in Python
    key: str  # as in JSON
    shape: Shape
    model: type[pydantic.BaseModel] | None  # of the value itself, or of the list/map items.
    deprecated: bool


@functools.cache
def describe(cls: type[pydantic.BaseModel]) -> tuple[FieldDescriptor, ...]:
    descriptors: list[FieldDescriptor] = []
    for name, field in cls.model_fields.items():
        shape, model = _classify(field.annotation)
        extra = field.json_schema_extra if isinstance(field.json_schema_extra, Mapping) else {}
        descriptors.append(FieldDescriptor(
            name=name,
            key=field.serialization_alias or field.alias or name,
            shape=shape,
            model=model,
            deprecated=name.startswith(DEPRECATED_PREFIX) or bool(extra.get('deprecated')),
        ))
    return tuple(descriptors)


def _classify(annotation: Any) -> tuple[Shape, type[pydantic.BaseModel] | None]:
    annotation = _unwrap_optional(annotation)
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    if origin in (list, tuple, set, frozenset, Sequence) or _is_subclass(origin, Sequence):
        item = _unwrap_optional(args[0]) if args else None
        return Shape.LIST, item if _is_model(item) else None
    elif origin in (dict, Mapping) or _is_subclass(origin, Mapping):
        item = _unwrap_optional(args[1]) if len(args) == 2 else None
        return Shape.MAP, item if _is_model(item) else None
    elif _is_model(annotation):
        return Shape.MODEL, annotation
    else:
        return Shape.SCALAR, None


def _unwrap_optional(annotation: Any) -> Any:
    """ Turn ``X | None`` into ``X``; leave the unions of several types as is. """
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, pydantic.BaseModel)


def _is_subclass(origin: Any, cls: type) -> bool:
    return isinstance(origin, type) and issubclass(origin, cls) and not issubclass(origin, str)


def is_zero(value: Any) -> bool:
    """
    Check if the value is the zero value of its type, i.e. as if never set.

    The nested models are zero if they are equal to their all-defaults state.
    """
    if value is None:
        return True
    elif isinstance(value, pydantic.BaseModel):
        return value == type(value).model_construct()
    else:
        return not value


def find_unknown_fields(
        cls: type[pydantic.BaseModel],
        data: Any,
        path: str = '',
) -> Iterator[str]:
    """
    Yield the dotted paths of the keys that the models do not declare.

    The models with the extra fields allowed (e.g. the object's metadata)
    accept any keys, so their extra keys are never reported.
    """
    if not isinstance(data, Mapping):
        return

    descriptors = describe(cls)
    known = {d.key: d for d in descriptors} | {d.name: d for d in descriptors}
    allows_extra = cls.model_config.get('extra') == 'allow'
    for key in sorted(data):
        subpath = f'{path}.{key}' if path else key
        descriptor = known.get(key)
        if descriptor is None:
            if not allows_extra:
                yield subpath
        elif descriptor.model is None:
            continue
        elif descriptor.shape is Shape.MODEL:
            yield from find_unknown_fields(descriptor.model, data[key], subpath)
        elif descriptor.shape is Shape.LIST and isinstance(data[key], list):
            for idx, item in enumerate(data[key]):
                yield from find_unknown_fields(descriptor.model, item, f'{subpath}[{idx}]')
        elif descriptor.shape is Shape.MAP and isinstance(data[key], Mapping):
            for subkey, item in sorted(data[key].items()):
                yield from find_unknown_fields(descriptor.model, item, f'{subpath}[{subkey}]')
