import functools
import logging
import sys

import click.testing
import pytest

from kubehook.cli import main

SCRIPT = """
import kubehook

registry = kubehook.OperatorRegistry()
not_a_registry = 123

def make_registry():
    return kubehook.OperatorRegistry()

async def elect(candidates):
    pass
"""


@pytest.fixture(autouse=True)
def srcdir(tmp_path, monkeypatch):
    (tmp_path / 'hooks.py').write_text(SCRIPT)
    pkgdir = tmp_path / 'package'
    pkgdir.mkdir()
    (pkgdir / '__init__.py').write_text('')
    (pkgdir / 'module_1.py').write_text(SCRIPT)
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.chdir(tmp_path)
    yield tmp_path


@pytest.fixture(autouse=True)
def clean_modules_cache():
    # Otherwise, the first loaded test-modules remain there forever,
    # preventing 2nd and further tests from passing.
    yield
    for key in list(sys.modules.keys()):
        if key.startswith('package') or key.startswith('__kubehook_script__'):
            del sys.modules[key]


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    level, handlers = root.level, root.handlers[:]
    yield
    root.setLevel(level)
    root.handlers[:] = handlers


@pytest.fixture()
def runner():
    return click.testing.CliRunner()


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('kubehook._core.reactor.running.run')
