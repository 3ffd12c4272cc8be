"""
Strict deprecation: no setting or changing of the deprecated fields.

The resources' spec & status are walked recursively along the declared
field descriptors: into the nested models, the lists of models by indexes,
and the maps of models by keys. For every deprecated field found:

* on creation, it must not be set (i.e. must be zero);
* on update, it must not become set if it was zero before;
* on update, it must not be changed if it was set before;
* clearing it to zero is always allowed, so are the unchanged values.

The nested structures that are absent in the old object are walked
as if they are created anew.
"""
from collections.abc import Iterator, Mapping
from typing import Any, Literal

import pydantic

from kubehook._cogs.structs import fielderrors
from kubehook._core.engines import errors
from kubehook._core.intents import descriptors, resources

ROOTS = ('spec', 'status')

Violation = tuple[Literal['set', 'updated'], str]


def check_deprecated(
        new: resources.Resource,
        old: resources.Resource | None,
) -> None:
    """
    Raise :class:`DeprecatedFieldError` if any deprecated field is violated.
    """
    set_paths: list[str] = []
    updated_paths: list[str] = []
    for kind, path in find_violations(new, old):
        (set_paths if kind == 'set' else updated_paths).append(path)

    error = fielderrors.FieldError.also_of(
        fielderrors.disallowed_fields(*set_paths) if set_paths else None,
        fielderrors.disallowed_update_deprecated_fields(*updated_paths) if updated_paths else None,
    )
    if error is not None:
        raise errors.DeprecatedFieldError(str(error), error)


def find_violations(
        new: resources.Resource,
        old: resources.Resource | None,
) -> Iterator[Violation]:
    for descriptor in descriptors.describe(type(new)):
        if descriptor.key in ROOTS:
            yield from _walk_field(
                descriptor,
                getattr(new, descriptor.name),
                getattr(old, descriptor.name, None) if old is not None else None,
                path=descriptor.key,
                creating=old is None,
            )


def _walk_model(
        new: pydantic.BaseModel,
        old: Any,
        *,
        path: str,
        creating: bool,
) -> Iterator[Violation]:
    old = old if isinstance(old, type(new)) else None
    for descriptor in descriptors.describe(type(new)):
        yield from _walk_field(
            descriptor,
            getattr(new, descriptor.name),
            getattr(old, descriptor.name) if old is not None else None,
            path=f'{path}.{descriptor.key}',
            creating=creating or old is None,
        )


def _walk_field(
        descriptor: descriptors.FieldDescriptor,
        new: Any,
        old: Any,
        *,
        path: str,
        creating: bool,
) -> Iterator[Violation]:
    if descriptor.deprecated:
        if descriptors.is_zero(new):
            pass
        elif creating or descriptors.is_zero(old):
            yield 'set', path
        elif new != old:
            yield 'updated', path

    # The deprecated fields are reported as a whole; their content is not walked.
    elif descriptor.model is None or new is None:
        pass
    elif descriptor.shape is descriptors.Shape.MODEL:
        yield from _walk_model(new, old, path=path, creating=creating)
    elif descriptor.shape is descriptors.Shape.LIST:
        olds = list(old) if isinstance(old, (list, tuple)) and not creating else []
        for idx, item in enumerate(new):
            if isinstance(item, pydantic.BaseModel):
                prev = olds[idx] if idx < len(olds) else None
                yield from _walk_model(item, prev, path=f'{path}[{idx}]', creating=creating)
    elif descriptor.shape is descriptors.Shape.MAP:
        olds = old if isinstance(old, Mapping) and not creating else {}
        for key in sorted(new):
            item = new[key]
            if isinstance(item, pydantic.BaseModel):
                yield from _walk_model(item, olds.get(key), path=f'{path}[{key}]', creating=creating)
