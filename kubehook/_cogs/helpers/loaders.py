"""
Loading the user-side operator definitions by their textual references.

The references are usually specified on the command-line, in one of two forms,
both resembling the "entry points" notation of the Python packaging:

* Importable modules: ``kubehook run mypkg.webhooks:registry``.
* Plain files: ``kubehook run ./webhooks.py:make_registry``.

The attribute after the colon is optional and defaults to ``registry``.
If the attribute is callable, it is called with no arguments to get the value.
"""
import importlib
import importlib.abc
import importlib.util
import os.path
import sys
from types import ModuleType
from typing import Any, cast

DEFAULT_ATTRIBUTE = 'registry'


def load(target: str, *, default: str = DEFAULT_ATTRIBUTE, call: bool = True) -> Any:
    """
    Resolve a ``module:attr`` or ``path.py:attr`` reference to a value.

    The callables are called only if ``call`` is true (the factories);
    otherwise, they are returned as is (e.g. the functions to be run later).
    """
    source, _, attr = target.partition(':')
    attr = attr or default
    if not source:
        raise ValueError(f"No module or file is specified in {target!r}.")

    module = _load_file(source) if source.endswith('.py') else importlib.import_module(source)
    try:
        value = getattr(module, attr)
    except AttributeError:
        raise LookupError(f"The attribute {attr!r} is not found in {source!r}.") from None
    return value() if call and callable(value) else value


def _load_file(path: str) -> ModuleType:
    sys.path.insert(0, os.path.abspath(os.path.dirname(path)))
    name = f'__kubehook_script__{path}'  # same pseudo-name as '__main__'
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec) if spec is not None else None
    loader = cast(importlib.abc.Loader, spec.loader) if spec is not None else None
    if module is not None and loader is not None:
        sys.modules[name] = module
        loader.exec_module(module)
        return module
    else:
        raise ImportError(f"Failed loading {path}: no module or loader.")
