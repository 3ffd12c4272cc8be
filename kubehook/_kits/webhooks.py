"""
The webhook server: an HTTPS endpoint for the admission & conversion reviews.

The server knows nothing about the admission itself: it parses the requests,
recognises the webhook types by the URL paths, passes the reviews to the
framework's function, and serialises the responses back.

Mind 2 different ways the errors are reported:

* Directly by the webhook's HTTP response, i.e. to the apiservers.
  This means that the webhook request was done improperly;
  the original API request might be good, but we could not confirm that.
* In ``.response.status``, as apiservers send it to the requesting user.
  This means that the original API operation was done improperly,
  while the webhooks are functional. These are done by the framework.
"""
import asyncio
import contextlib
import json
import logging
import ssl
import tempfile
from collections.abc import Awaitable, Callable, Mapping

import aiohttp.web

from kubehook._cogs.aiokits import aiotoggles
from kubehook._cogs.configs import configuration
from kubehook._cogs.structs import reviews
from kubehook._core.engines import admission, errors

logger = logging.getLogger(__name__)

HEALTHZ_PATH = '/healthz'


class WebhookServer:
    """
    A local HTTPS (or HTTP, if insecure) endpoint, based on ``aiohttp``.

    * ``settings.server.addr``, ``settings.server.port`` is where to listen.
    * ``settings.server.*_path`` are the paths of the webhooks by their types.
    * ``certdata``, ``pkeydata`` are the server's certificate & private key
      (in PEM), as taken from the serving secret.
    * ``synced`` is the readiness of the caches, as reported by the health
      endpoint; the admission requests themselves wait for it in the framework.
    """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            certdata: bytes | None = None,
            pkeydata: bytes | None = None,
            synced: aiotoggles.ToggleSet | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.certdata = certdata
        self.pkeydata = pkeydata
        self.synced = synced

    @property
    def paths(self) -> Mapping[str, admission.WebhookType]:
        return {
            self.settings.server.defaulting_path: admission.WebhookType.DEFAULTING,
            self.settings.server.validation_path: admission.WebhookType.VALIDATION,
            self.settings.server.conversion_path: admission.WebhookType.CONVERSION,
        }

    def build_app(self, fn: reviews.WebhookFn) -> aiohttp.web.Application:
        app = aiohttp.web.Application()
        for path, webhook in self.paths.items():
            app.add_routes([aiohttp.web.post(path, self._make_handler(fn, webhook))])
        app.add_routes([aiohttp.web.get(HEALTHZ_PATH, self._healthz)])
        return app

    async def __call__(self, fn: reviews.WebhookFn) -> None:
        """
        Serve the webhooks until cancelled.

        On cancellation, the listening socket is closed at once, but the
        requests in flight are given some time to finish (the graceful period).
        """
        context = self._build_ssl()
        app = self.build_app(fn)
        runner = aiohttp.web.AppRunner(app, handle_signals=False,
                                       shutdown_timeout=self.settings.server.shutdown_timeout)
        await runner.setup()
        try:
            addr = self.settings.server.addr or None  # None is aiohttp's "any interface"
            port = self.settings.server.port
            site = aiohttp.web.TCPSite(runner, addr, port, ssl_context=context)
            await site.start()

            schema = 'http' if context is None else 'https'
            logger.info(f"Listening for webhooks at {schema}://{addr or '*'}:{port}")
            await asyncio.Event().wait()
        finally:
            # On any reason of exit, stop serving the endpoint.
            await runner.cleanup()

    def _make_handler(
            self,
            fn: reviews.WebhookFn,
            webhook: admission.WebhookType,
    ) -> Callable[[aiohttp.web.Request], Awaitable[aiohttp.web.Response]]:

        # Redefine as a coroutine instead of a partial to avoid warnings from aiohttp.
        async def _serve_fn(request: aiohttp.web.Request) -> aiohttp.web.Response:
            return await self._serve(fn, request, webhook=webhook)

        return _serve_fn

    @staticmethod
    async def _serve(
            fn: reviews.WebhookFn,
            request: aiohttp.web.Request,
            *,
            webhook: str,
    ) -> aiohttp.web.Response:
        """
        Serve a single review request: an aiohttp-specific implementation.
        """
        # The extra information that is passed down to the framework for authentication.
        # Note: this is an identity of an apiserver, not of the user that sends an API request.
        headers = dict(request.headers)
        sslpeer = request.transport.get_extra_info('peercert') if request.transport else None
        try:
            data = await parse_review(request)
            response = await fn(data, webhook=webhook, sslpeer=sslpeer, headers=headers)
            return aiohttp.web.json_response(response)
        except errors.WebhookError as e:
            logger.warning(f"Rejecting a {webhook} request: {e}")
            return aiohttp.web.Response(status=e.status, text=str(e))

    async def _healthz(self, request: aiohttp.web.Request) -> aiohttp.web.Response:
        if self.synced is None or self.synced.is_on():
            return aiohttp.web.Response(status=200, text='ok')
        else:
            return aiohttp.web.Response(status=503, text='caches are not synced yet')

    def _build_ssl(self) -> ssl.SSLContext | None:
        """
        Construct an SSL context from the certificate & key, unless insecure.
        """
        if self.settings.server.insecure:
            return None
        if self.certdata is None or self.pkeydata is None:
            raise ValueError("HTTPS requires the certificate and the private key.")

        # The SSL contexts can load the certificates only from files.
        context = ssl.create_default_context(purpose=ssl.Purpose.CLIENT_AUTH)
        with contextlib.ExitStack() as stack:
            certf = stack.enter_context(tempfile.NamedTemporaryFile())
            pkeyf = stack.enter_context(tempfile.NamedTemporaryFile())
            certf.write(self.certdata)
            pkeyf.write(self.pkeydata)
            certf.flush()
            pkeyf.flush()
            context.load_cert_chain(certf.name, pkeyf.name)
        return context


async def parse_review(request: aiohttp.web.Request) -> Mapping[str, object]:
    """
    Parse the review from the request, or explain what is wrong with it.
    """
    if request.content_type != 'application/json':
        raise errors.UnsupportedMediaTypeError("invalid Content-Type, want `application/json`")

    text = await request.text()
    if not text:
        raise errors.MalformedRequestError("could not decode body: empty body")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise errors.MalformedRequestError(f"could not decode body: {e}") from e
    if not isinstance(data, dict):
        raise errors.MalformedRequestError("could not decode body: not a JSON object")
    return data
