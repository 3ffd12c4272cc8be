import inspect
import json
import logging
import re

import pytest

from kubehook._cogs.clients import auth
from kubehook._cogs.configs.configuration import OperatorSettings
from kubehook._cogs.structs.credentials import ConnectionInfo
from kubehook._cogs.structs.gvks import GroupVersionKind
from kubehook._core.actions.loggers import ObjectLogger


# Make all tests in this directory and below asyncio-compatible by default.
# Due to how pytest-async checks for these markers, they should be added as early as possible.
@pytest.hookimpl(hookwrapper=True)
def pytest_pycollect_makeitem(collector, name, obj):
    if collector.funcnamefilter(name) and inspect.iscoroutinefunction(obj):
        pytest.mark.asyncio(obj)
    yield


@pytest.fixture()
def settings():
    return OperatorSettings()


@pytest.fixture()
def gvk():
    """ The identity of the resource used in the tests. """
    return GroupVersionKind('example.com', 'v1', 'Foo')


@pytest.fixture()
def logger():
    return ObjectLogger(body={'metadata': {'name': 'name1', 'namespace': 'ns1'}})


#
# Mocks for the Kubernetes API. No external calls must be made under any circumstances.
# The unit-tests must be fully isolated from the environment.
#

@pytest.fixture()
def hostname():
    """ A fake hostname to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
def connection(hostname):
    return ConnectionInfo(server=f'https://{hostname}')


@pytest.fixture()
async def api_context(connection):
    """
    Provide a freshly created API context for every test, as if the code
    is invoked from the central `operator` function (where it is set normally).
    """
    context = auth.APIContext(connection)
    token = auth.context_var.set(context)
    try:
        yield context
    finally:
        auth.context_var.reset(token)
        await context.close()


# Note: Unused `api_context` is to ensure that the client wrappers have the credentials.
@pytest.fixture()
def resp_mocker(api_context, aresponses, mocker):
    """
    A factory of server-side callbacks for `aresponses` with mocking/spying.

    The value of the fixture is a function, which return a coroutine mock.
    That coroutine mock should be passed to `aresponses.add` as a response
    callback function. When called, it calls the mock defined by the function's
    arguments (specifically, return_value or side_effects).

    The difference from passing the responses directly to `aresponses.add`
    is that it is possible to assert on whether the response was handled
    by that callback at all (i.e. HTTP URL & method matched), especially
    if there are multiple responses registered.

    Sample usage::

        def test_me(resp_mocker):
            response = aiohttp.web.json_response({'a': 'b'})
            callback = resp_mocker(return_value=response)
            aresponses.add(hostname, '/path/', 'get', callback)
            do_something()
            assert callback.called
            assert callback.call_count == 1
    """
    def resp_maker(*args, **kwargs):
        actual_response = mocker.MagicMock(*args, **kwargs)

        async def resp_mock_effect(request):

            # The request's content can be read inside of the handler only. We preserve
            # the data into a conventional field, so that they could be asserted later.
            try:
                request.data = await request.json()
            except json.JSONDecodeError:
                request.data = await request.text()

            # Get a response/error as it was intended (via return_value/side_effect).
            return actual_response()

        return mocker.AsyncMock(side_effect=resp_mock_effect)
    return resp_maker


#
# Helpers for the logging checks.
#

@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    caplog.set_level(logging.DEBUG)

    def assert_logs_fn(patterns, prohibited=[], strict=False):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")
                elif strict:
                    raise AssertionError(f"Unexpected log message: {message!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
