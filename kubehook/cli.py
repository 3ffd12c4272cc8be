import asyncio
import dataclasses
import functools
from collections.abc import Callable
from typing import Any

import click

from kubehook._cogs.configs import configuration
from kubehook._cogs.helpers import loaders
from kubehook._cogs.structs import credentials
from kubehook._core.actions import loggers
from kubehook._core.engines import metrics
from kubehook._core.intents import registries
from kubehook._core.reactor import running


@dataclasses.dataclass()
class CLIControls:
    """ The controls, which are impossible to pass via CLI (e.g. in tests). """
    stop_flag: asyncio.Event | None = None
    connection: credentials.ConnectionInfo | None = None
    settings: configuration.OperatorSettings | None = None
    metrics_sink: metrics.MetricsSink | None = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: bool | None = False,
                log_refkey: str | None = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


@click.version_option(prog_name='kubehook')
@click.group(name='kubehook', context_settings=dict(
    auto_envvar_prefix='KUBEHOOK',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str, help="The namespace of the serving secret.")
@click.option('--secret-name', type=str, help="The name of the serving secret.")
@click.option('--addr', type=str, help="The address to listen on.")
@click.option('--port', type=int, help="The port to listen on.")
@click.option('--insecure', is_flag=True, default=None, help="Serve via HTTP (debugging only).")
@click.option('--mutating-configuration', type=str)
@click.option('--validating-configuration', type=str)
@click.option('--disallow-unknown-fields', is_flag=True, default=None)
@click.option('--strict-deprecation', is_flag=True, default=None)
@click.option('--standalone/--no-standalone', default=None)
@click.option('--election', type=str, metavar='TARGET',
              help="An async election function as module:fn or file.py:fn (implies --no-standalone).")
@click.argument('target')
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        __controls: CLIControls,
        target: str,
        namespace: str | None,
        secret_name: str | None,
        addr: str | None,
        port: int | None,
        insecure: bool | None,
        mutating_configuration: str | None,
        validating_configuration: str | None,
        disallow_unknown_fields: bool | None,
        strict_deprecation: bool | None,
        standalone: bool | None,
        election: str | None,
) -> None:
    """
    Start the webhooks of the registry and keep their configurations in sync.

    The TARGET is either ``module:attr`` or ``path/to/file.py:attr``;
    the attribute defaults to ``registry``, and is called if callable.
    """
    try:
        registry = loaders.load(target)
    except (LookupError, ValueError) as e:
        raise click.BadParameter(str(e), param_hint='TARGET') from e
    if not isinstance(registry, registries.OperatorRegistry):
        raise click.BadParameter(f"{target!r} is not an operator registry: {registry!r}",
                                 param_hint='TARGET')

    electionfn = None
    if election is not None:
        try:
            electionfn = loaders.load(election, default='elect', call=False)
        except (LookupError, ValueError) as e:
            raise click.BadParameter(str(e), param_hint='--election') from e
        if not callable(electionfn):
            raise click.BadParameter(f"{election!r} is not a function: {electionfn!r}",
                                     param_hint='--election')
        standalone = False if standalone is None else standalone

    settings = __controls.settings if __controls.settings is not None else configuration.OperatorSettings()
    if namespace is not None:
        settings.server.namespace = namespace
    if secret_name is not None:
        settings.server.secret_name = secret_name
    if addr is not None:
        settings.server.addr = addr
    if port is not None:
        settings.server.port = port
    if insecure is not None:
        settings.server.insecure = insecure
    if mutating_configuration is not None:
        settings.registration.mutating_configuration = mutating_configuration
    if validating_configuration is not None:
        settings.registration.validating_configuration = validating_configuration
    if disallow_unknown_fields is not None:
        settings.admission.disallow_unknown_fields = disallow_unknown_fields
    if strict_deprecation is not None:
        settings.admission.strict_deprecation = strict_deprecation
    if standalone is not None:
        settings.registration.standalone = standalone

    return running.run(
        registry=registry,
        settings=settings,
        metrics_sink=__controls.metrics_sink,
        connection=__controls.connection,
        stop_flag=__controls.stop_flag,
        electionfn=electionfn,
    )
