"""
Field errors: a composable tree of validation errors with field paths.

The errors are accumulated during a validation pass, and are never discarded:
:meth:`FieldError.also` only adds to the already collected errors. The paths
are prefixed when the errors bubble up from the nested structures to the root::

    errs = None
    for idx, port in enumerate(spec.ports):
        if port.number <= 0:
            errs = FieldError.also_of(errs, invalid_value(port.number, 'number').via_index(idx))
    errs = errs.via_field('spec', 'ports') if errs else None

The rendering merges the errors with the same message & details, and sorts
the paths & messages, so that the text is stable regardless of the order
in which the errors were found::

    missing field(s): spec.name, spec.image
    invalid value "-1": spec.ports[0].number
"""
import dataclasses
from collections.abc import Iterable, Iterator
from typing import Any

CURRENT_FIELD = ''


def _is_index(part: str) -> bool:
    return part.startswith('[') and part.endswith(']')


def _flatten(parts: Iterable[str]) -> str:
    """ Join the path parts with dots, but glue the indexes/keys to the preceding part. """
    path: list[str] = []
    for part in parts:
        for subpart in part.split('.'):
            if subpart == CURRENT_FIELD:
                continue
            elif path and _is_index(subpart):
                path[-1] += subpart
            else:
                path.append(subpart)
    return '.'.join(path)


@dataclasses.dataclass(frozen=True)
class FieldError:
    """
    A single error with field paths, or a collection of other errors.

    An error with no message, no details, no paths, and no nested errors
    is empty and falsy; empty errors vanish when combined with other errors.
    """
    message: str = ''
    paths: tuple[str, ...] = ()
    details: str = ''
    errors: tuple["FieldError", ...] = ()

    def __bool__(self) -> bool:
        return bool(self.message or self.details or self.paths or self.errors)

    def __str__(self) -> str:
        lines: list[str] = []
        for error in _merge(self.flatten()):
            text = f"{error.message}: {', '.join(error.paths)}" if error.paths else error.message
            lines.append(f"{text}\n{error.details}" if error.details else text)
        return '\n'.join(lines)

    def flatten(self) -> list["FieldError"]:
        """ All the individual errors of the tree, with no nesting. """
        return list(self._iter_flat())

    def _iter_flat(self) -> Iterator["FieldError"]:
        if self.message:
            yield FieldError(message=self.message, paths=self.paths, details=self.details)
        for error in self.errors:
            yield from error._iter_flat()

    def via_field(self, *prefix: str) -> "FieldError":
        """ Prefix all the paths of all the errors with the field names. """
        return FieldError(errors=tuple(
            dataclasses.replace(error, paths=tuple(_flatten(prefix + (path,)) for path in error.paths))
            for error in self.flatten()
        ))

    def via_index(self, index: int) -> "FieldError":
        return self.via_field(f'[{index}]')

    def via_key(self, key: str) -> "FieldError":
        return self.via_field(f'[{key}]')

    def via_field_index(self, field: str, index: int) -> "FieldError":
        return self.via_index(index).via_field(field)

    def via_field_key(self, field: str, key: str) -> "FieldError":
        return self.via_key(key).via_field(field)

    def also(self, *errors: "FieldError | None") -> "FieldError":
        """ Combine this error with other errors, keeping all of them. """
        collected = tuple(self.flatten())
        for error in errors:
            collected += tuple(error.flatten()) if error is not None else ()
        return FieldError(errors=collected)

    @staticmethod
    def also_of(base: "FieldError | None", *errors: "FieldError | None") -> "FieldError | None":
        """
        The same as :meth:`also`, but for the initial errors that can be ``None``.

        Returns ``None`` if nothing was collected (i.e. all errors are empty).
        """
        result = (base if base is not None else FieldError()).also(*errors)
        return result if result else None


def _merge(errors: Iterable[FieldError]) -> list[FieldError]:
    merged: dict[tuple[str, str], set[str]] = {}
    for error in errors:
        merged.setdefault((error.message, error.details), set()).update(error.paths)
    return [
        FieldError(message=message, details=details, paths=tuple(sorted(paths)))
        for (message, details), paths in sorted(merged.items())
    ]


def missing_field(*paths: str) -> FieldError:
    return FieldError(message="missing field(s)", paths=paths)


def disallowed_fields(*paths: str) -> FieldError:
    return FieldError(message="must not set the field(s)", paths=paths)


def disallowed_update_deprecated_fields(*paths: str) -> FieldError:
    return FieldError(message="must not update deprecated field(s)", paths=paths)


def invalid_value(value: Any, path: str, *details: str) -> FieldError:
    return FieldError(message=f'invalid value "{value}"', paths=(path,), details=', '.join(details))


def invalid_key_name(key: str, path: str, *details: str) -> FieldError:
    return FieldError(message=f'invalid key name "{key}"', paths=(path,), details=', '.join(details))


def missing_one_of(*paths: str) -> FieldError:
    return FieldError(message="expected exactly one, got neither", paths=paths)


def multiple_one_of(*paths: str) -> FieldError:
    return FieldError(message="expected exactly one, got both", paths=paths)


def out_of_bounds(value: Any, lower: Any, upper: Any, path: str) -> FieldError:
    return FieldError(message=f"expected {lower} <= {value} <= {upper}", paths=(path,))


def immutable_fields(*paths: str, diff: str = '') -> FieldError:
    return FieldError(message="Immutable fields changed (-old +new)", paths=paths, details=diff)


def generic(message: str, *paths: str) -> FieldError:
    return FieldError(message=message, paths=paths)
