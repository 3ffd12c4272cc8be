"""
Detecting the framework's own version.

The version is determined only once at startup when the code is loaded.
"""
import importlib.metadata

version: str | None = None

try:
    name, *_ = __name__.split('.')  # usually "kubehook", unless renamed/forked.
    version = importlib.metadata.version(name)
except importlib.metadata.PackageNotFoundError:
    pass  # not installed, e.g. running from a source checkout.
