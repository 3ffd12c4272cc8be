"""
JSON patches (RFC 6902) as the minimal difference between two objects.

The patches are calculated structurally: the original object as received
in the admission review is compared to the final object as marshalled after
all the defaulting & mutations. The keys are walked in a sorted order,
so the patches are deterministic regardless of the marshalling order.

List values are treated as a whole, and not recursed into. Therefore,
an addition/removal of a list item is a replacement of the whole list.
This is sufficient for admission: the patches are applied atomically.
"""
import collections.abc
from collections.abc import Iterator, Sequence
from typing import Any, Literal, TypedDict

JSONPatchOp = Literal["add", "replace", "remove"]


def _escaped_path(keys: Sequence[str]) -> str:
    """Provides an appropriately escaped path for JSON Patches.

    See https://datatracker.ietf.org/doc/html/rfc6901#section-3 for more details.
    """
    return '/'.join(map(lambda key: key.replace('~', '~0').replace('/', '~1'), keys))


class JSONPatchItem(TypedDict, total=False):
    op: JSONPatchOp
    path: str
    value: Any | None


JSONPatch = list[JSONPatchItem]


def diff_iter(
        a: Any,
        b: Any,
        keys: tuple[str, ...] = ('',),
) -> Iterator[JSONPatchItem]:
    """
    Calculate the JSON patch operations that turn ``a`` into ``b``.

    The ``keys`` are the path to the compared values, starting with the root
    (an empty key), so that the rendered path has a leading slash.
    """
    if a == b and type(a) is type(b):  # NB: 1 == True in Python, but not in JSON.
        pass
    elif isinstance(a, collections.abc.Mapping) and isinstance(b, collections.abc.Mapping):
        for key in sorted(set(a) | set(b)):
            if key not in a:
                yield JSONPatchItem(op='add', path=_escaped_path(keys + (key,)), value=b[key])
            elif key not in b:
                yield JSONPatchItem(op='remove', path=_escaped_path(keys + (key,)))
            else:
                yield from diff_iter(a[key], b[key], keys=keys + (key,))
    else:
        yield JSONPatchItem(op='replace', path=_escaped_path(keys), value=b)


def diff(a: Any, b: Any) -> JSONPatch:
    """
    Same as :func:`diff_iter`, but returns the whole list instead of iterator.
    """
    return list(diff_iter(a, b))
