import asyncio
import base64
import functools
import logging
import signal
import threading
from collections.abc import Collection, MutableSequence

from kubehook._cogs.aiokits import aiotasks, aiotoggles
from kubehook._cogs.clients import auth, logins
from kubehook._cogs.configs import configuration
from kubehook._cogs.structs import credentials, references, reviews
from kubehook._core.engines import admission, errors, metrics
from kubehook._core.intents import registries
from kubehook._core.reactor import informers, leadership, queueing, registration
from kubehook._kits import webhooks

logger = logging.getLogger(__name__)


def run(
        *,
        registry: registries.OperatorRegistry,
        settings: configuration.OperatorSettings | None = None,
        metrics_sink: metrics.MetricsSink | None = None,
        connection: credentials.ConnectionInfo | None = None,
        stop_flag: asyncio.Event | None = None,
        electionfn: leadership.ElectionFn | None = None,
) -> None:
    """
    Run the whole operator synchronously.

    This function should be used to run an operator in normal sync mode.
    """
    try:
        asyncio.run(operator(
            registry=registry,
            settings=settings,
            metrics_sink=metrics_sink,
            connection=connection,
            stop_flag=stop_flag,
            electionfn=electionfn,
        ))
    except asyncio.CancelledError:
        pass


async def operator(
        *,
        registry: registries.OperatorRegistry,
        settings: configuration.OperatorSettings | None = None,
        metrics_sink: metrics.MetricsSink | None = None,
        connection: credentials.ConnectionInfo | None = None,
        stop_flag: asyncio.Event | None = None,
        electionfn: leadership.ElectionFn | None = None,
) -> None:
    """
    Run the whole operator asynchronously.

    This function should be used to run an operator in an asyncio event-loop
    if the operator is orchestrated explicitly and manually.

    It is efficiently `spawn_tasks` + `run_tasks` with the API session around.
    """
    settings = settings if settings is not None else configuration.OperatorSettings()
    connection = connection if connection is not None else logins.login(logger=logger)
    context = auth.APIContext(connection)
    auth.context_var.set(context)
    try:
        operator_tasks = await spawn_tasks(
            registry=registry,
            settings=settings,
            metrics_sink=metrics_sink,
            stop_flag=stop_flag,
            electionfn=electionfn,
            context=context,
        )
        await run_tasks(operator_tasks)
    finally:
        await context.close()


async def spawn_tasks(
        *,
        registry: registries.OperatorRegistry,
        settings: configuration.OperatorSettings,
        metrics_sink: metrics.MetricsSink | None = None,
        stop_flag: asyncio.Event | None = None,
        electionfn: leadership.ElectionFn | None = None,
        context: auth.APIContext | None = None,
) -> Collection[aiotasks.Task]:
    """
    Spawn all the tasks needed to run the operator.

    The tasks are properly inter-connected with the synchronisation primitives.

    The reconcilers are promoted either for all keys in the standalone mode,
    or by the election function (if given) for the buckets it wins.
    """
    loop = asyncio.get_running_loop()
    signal_flag: aiotasks.Future = asyncio.Future()
    synced = aiotoggles.ToggleSet(all)
    tasks: MutableSequence[aiotasks.Task] = []

    # The serving secret is needed both by the server (certs) and by the reconcilers (CA bundle).
    secrets = informers.Informer(
        settings=settings,
        resource=references.SECRETS,
        namespace=settings.server.namespace,
        field_selector=f'metadata.name={settings.server.secret_name}',
    )
    reconcilers, reconciled = build_reconcilers(registry=registry, settings=settings, secrets=secrets)

    # Few common background forever-running infrastructural tasks (irregular root tasks).
    tasks.append(asyncio.create_task(
        name="stop-flag checker",
        coro=_stop_flag_checker(
            signal_flag=signal_flag,
            stop_flag=stop_flag)))

    # The informers' caches must be filled before anything else can work. Nothing waits for them
    # at spawning, but the admission requests & the reconcilers' promotion wait for the sync.
    for informer in [secrets] + reconciled:
        toggle = await synced.make_toggle(name=str(informer.resource))
        tasks.append(aiotasks.create_guarded_task(
            name=f"informer of {informer.resource}", logger=logger,
            coro=informer.run(synced=toggle)))
        if settings.registration.resync_interval is not None:
            tasks.append(aiotasks.create_guarded_task(
                name=f"resyncer of {informer.resource}", logger=logger,
                coro=informer.resync(settings.registration.resync_interval)))

    for reconciler in reconcilers:
        tasks.append(aiotasks.create_guarded_task(
            name=f"{reconciler.title} reconciler", logger=logger,
            coro=queueing.run_workers(
                reconciler.queue,
                processor=reconciler.process,
                settings=settings,
                name=f"{reconciler.title} reconciler")))

    candidates = [leadership.Candidate(reconciler, functools.partial(_enqueue, reconciler.queue))
                  for reconciler in reconcilers]
    if settings.registration.standalone:
        tasks.append(aiotasks.create_guarded_task(
            name="standalone promoter", logger=logger,
            coro=_standalone_promoter(candidates=candidates, synced=synced)))
    elif electionfn is not None:
        tasks.append(aiotasks.create_guarded_task(
            name="leader election", logger=logger,
            coro=_leader_election(electionfn=electionfn, candidates=candidates, synced=synced)))
    elif candidates:
        logger.warning("The reconcilers are neither standalone nor elected: "
                       "the configurations will not be reconciled.")

    # Admission webhooks are served regardless of the reconcilers, by all replicas.
    tasks.append(aiotasks.create_guarded_task(
        name="admission webhook server", logger=logger,
        coro=_admission_webhook_server(
            settings=settings,
            secrets=secrets,
            synced=synced,
            webhookfn=functools.partial(admission.serve_admission_request,
                                        registry=registry,
                                        settings=settings,
                                        synced=synced,
                                        metrics_sink=metrics_sink,
                                        client=context))))

    # Ensure that all guarded tasks got control for a moment to enter the guard.
    await asyncio.sleep(0)

    # On Ctrl+C or pod termination, cancel all tasks gracefully.
    if threading.current_thread() is threading.main_thread():
        # Handle NotImplementedError when ran on Windows since asyncio only supports Unix signals
        try:
            loop.add_signal_handler(signal.SIGINT, signal_flag.set_result, signal.SIGINT)
            loop.add_signal_handler(signal.SIGTERM, signal_flag.set_result, signal.SIGTERM)
        except NotImplementedError:
            logger.warning("OS signals are ignored: can't add signal handler in Windows.")

    else:
        logger.warning("OS signals are ignored: running not in the main thread.")

    return tasks


def build_reconcilers(
        *,
        registry: registries.OperatorRegistry,
        settings: configuration.OperatorSettings,
        secrets: informers.Informer,
) -> tuple[list[registration.Reconciler], list[informers.Informer]]:
    """
    Build the reconcilers (and their informers) for the configured objects.

    Every admission webhook configuration is watched by its name only.
    The CRDs are watched all at once, and filtered by the reconciler.
    """
    reconcilers: list[registration.Reconciler] = []
    reconciled: list[informers.Informer] = []

    name = settings.registration.mutating_configuration
    if name is not None:
        objects = informers.Informer(settings=settings, resource=references.MUTATING_WEBHOOK,
                                     field_selector=f'metadata.name={name}')
        reconcilers.append(registration.MutatingWebhookReconciler(
            name=name,
            path=settings.server.defaulting_path,
            rules=registration.build_rules(
                registry.resources,
                operations=registration.defaulting_operations),
            settings=settings,
            secrets=secrets,
            objects=objects,
            queue=queueing.WorkQueue(settings=settings, name=name),
        ))
        reconciled.append(objects)

    name = settings.registration.validating_configuration
    if name is not None:
        objects = informers.Informer(settings=settings, resource=references.VALIDATING_WEBHOOK,
                                     field_selector=f'metadata.name={name}')
        reconcilers.append(registration.ValidatingWebhookReconciler(
            name=name,
            path=settings.server.validation_path,
            rules=registration.build_rules(
                registry.resources,
                operations=registration.validation_operations(registry.validation)),
            settings=settings,
            secrets=secrets,
            objects=objects,
            queue=queueing.WorkQueue(settings=settings, name=name),
        ))
        reconciled.append(objects)

    if registry.conversions:
        objects = informers.Informer(settings=settings, resource=references.CRDS)
        reconcilers.append(registration.ConversionReconciler(
            path=settings.server.conversion_path,
            conversions=registry.conversions.values(),
            settings=settings,
            secrets=secrets,
            objects=objects,
            queue=queueing.WorkQueue(settings=settings, name='conversions'),
        ))
        reconciled.append(objects)

    return reconcilers, reconciled


async def run_tasks(
        root_tasks: Collection[aiotasks.Task],
) -> None:
    """
    Orchestrate the tasks and terminate them gracefully when needed.

    The root tasks are expected to run forever. Their number is limited. Once
    any of them exits, the whole operator and all other root tasks should exit.
    """

    # Run the infinite tasks until one of them fails/exits (they never exit normally).
    # If the operator is cancelled, propagate the cancellation to all the sub-tasks.
    try:
        root_done, root_pending = await aiotasks.wait(root_tasks, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await aiotasks.stop(root_tasks, title="Root", logger=logger, interval=10)
        raise

    # If the operator is intact, but one of the root tasks has exited (successfully or not),
    # cancel all the remaining root tasks, and gracefully exit other spawned sub-tasks.
    root_cancelled, _ = await aiotasks.stop(root_pending, title="Root", logger=logger, interval=10)

    # If succeeded or if cancellation is silenced, re-raise from failed tasks (if any).
    await aiotasks.reraise(root_done | root_cancelled)


async def _stop_flag_checker(
        signal_flag: aiotasks.Future,
        stop_flag: asyncio.Event | None,
) -> None:
    """
    A top-level task for external stopping by setting a stop-flag. Once set,
    this task will exit, and thus all other top-level tasks will be cancelled.
    """

    # Selects the flags to be awaited (if set).
    flags: list[aiotasks.Future] = [signal_flag]
    if stop_flag is not None:
        flags.append(asyncio.create_task(stop_flag.wait(), name="stop-flag waiter"))

    # Wait until one of the stoppers is set/raised.
    try:
        done, pending = await asyncio.wait(flags, return_when=asyncio.FIRST_COMPLETED)
        future = done.pop()
        result = await future
    except asyncio.CancelledError:
        pass  # operator is stopping for any other reason
    else:
        if isinstance(result, signal.Signals):
            logger.info(f"Signal {result.name} is received. Operator is stopping.")
        else:
            logger.info("Stop-flag is raised. Operator is stopping.")
    finally:
        for flag in flags:
            if flag is not signal_flag:
                flag.cancel()


async def _standalone_promoter(
        *,
        candidates: Collection[leadership.Candidate],
        synced: aiotoggles.ToggleSet,
) -> None:
    """
    Promote all reconcilers for all keys once the caches are filled; demote on exit.

    Before the sync, the reconcilers would see no objects and would fail in vain.
    """
    await synced.wait_for(True)
    bucket = leadership.UniversalBucket()
    for candidate in candidates:
        candidate.promote(bucket)
    logger.debug(f"{len(candidates)} reconcilers are promoted in the standalone mode.")
    try:
        await asyncio.Event().wait()
    finally:
        for candidate in candidates:
            candidate.demote(bucket)


async def _leader_election(
        *,
        electionfn: leadership.ElectionFn,
        candidates: Collection[leadership.Candidate],
        synced: aiotoggles.ToggleSet,
) -> None:
    """
    Let the external leader election promote & demote the reconcilers.

    The election may run forever or only promote once and return: in the latter
    case, the promotions stay as they are until the operator exits.
    """
    await synced.wait_for(True)
    await electionfn(candidates)
    await asyncio.Event().wait()


def _enqueue(
        queue: queueing.WorkQueue[leadership.ObjectKey],
        bucket: leadership.Bucket,
        key: leadership.ObjectKey,
) -> None:
    queue.add(key)


async def _admission_webhook_server(
        *,
        settings: configuration.OperatorSettings,
        secrets: informers.Informer,
        synced: aiotoggles.ToggleSet,
        webhookfn: reviews.WebhookFn,
) -> None:
    """
    Serve the webhooks with the certificates from the serving secret.

    The certificates are taken once on startup. The rotation of the secret
    requires a restart of the operator (e.g. by the secret's checksum in
    the pods' annotations).
    """
    certdata: bytes | None = None
    pkeydata: bytes | None = None
    if not settings.server.insecure:
        await synced.wait_for(True)
        namespace, name = settings.server.namespace, settings.server.secret_name
        secret = secrets.get(leadership.ObjectKey(namespace, name))
        data = (secret or {}).get('data') or {}
        if registration.SERVER_CERT_KEY not in data or registration.SERVER_KEY_KEY not in data:
            raise errors.RegistrationError(f"The serving secret {namespace}/{name} is absent "
                                           f"or has no server certificate and key.")
        certdata = base64.b64decode(data[registration.SERVER_CERT_KEY])
        pkeydata = base64.b64decode(data[registration.SERVER_KEY_KEY])

    server = webhooks.WebhookServer(settings=settings, certdata=certdata, pkeydata=pkeydata,
                                    synced=synced)
    await server(webhookfn)
