"""
Dispatching of the webhook requests to the admission & conversion engines.

The webhook servers know nothing about admission: they only parse the HTTP
requests, pass the reviews to :func:`serve_admission_request` together with
the webhook type (as recognised by the URL path), and send the responses back.
All the failures of the reviewed objects are converted into the denials
(or the failed conversions) in the regular responses with HTTP 200.
"""
import base64
import enum
import json
import logging
import time
from collections.abc import Collection, Mapping
from typing import Any

from kubehook._cogs.aiokits import aiotoggles
from kubehook._cogs.configs import configuration
from kubehook._cogs.structs import patches, reviews
from kubehook._core.actions import loggers
from kubehook._core.engines import conversion, decoding, defaulting, errors, metrics, validation
from kubehook._core.intents import registries

logger = logging.getLogger(__name__)

# As in K8s API's metav1.StatusReason, for the codes used in the denials.
STATUS_REASONS: Mapping[int, str] = {
    400: 'BadRequest',
    403: 'Forbidden',
    404: 'NotFound',
    409: 'Conflict',
    422: 'Invalid',
    500: 'InternalError',
}


class WebhookType(str, enum.Enum):
    DEFAULTING = 'defaulting'
    VALIDATION = 'validation'
    CONVERSION = 'conversion'

    def __str__(self) -> str:
        return str(self.value)


async def serve_admission_request(
        # Required for all webhook servers, meaningless without it:
        request: Mapping[str, Any],
        *,
        # Optional for webhook servers that can recognise this information:
        webhook: str | None = None,
        headers: reviews.Headers | None = None,
        sslpeer: reviews.SSLPeer | None = None,
        # Injected by partial() from run_tasks():
        registry: registries.OperatorRegistry,
        settings: configuration.OperatorSettings,
        synced: aiotoggles.ToggleSet | None = None,
        metrics_sink: metrics.MetricsSink | None = None,
        client: Any = None,
) -> Mapping[str, Any]:
    """
    The actual and the only implementation of the `WebhookFn` protocol.

    This function is passed to the webhook server to be called whenever
    a new review request is received. The framework's parameters are bound
    via partial(), so that the resulting function matches the protocol.

    The reviews are suspended (not rejected) until the informers are synced,
    so that the callbacks never see the empty caches on startup.
    """
    if synced is not None:
        await synced.wait_for(True)

    try:
        webhook_type = WebhookType(webhook)
    except ValueError:
        raise errors.UnknownWebhookError(f"Unknown webhook: {webhook!r}") from None

    sink = metrics_sink if metrics_sink is not None else metrics.NullMetrics()
    started = time.monotonic()
    if webhook_type is WebhookType.CONVERSION:
        if not isinstance(request.get('request'), Mapping):
            raise errors.MalformedRequestError("The conversion review has no request.")
        response = conversion.convert_review(request, conversions=registry.conversions, logger=logger)
        sink.report_conversion(request=request, response=response,
                               duration=time.monotonic() - started)
        return response

    payload = request.get('request')
    if not isinstance(payload, Mapping):
        raise errors.MalformedRequestError("The admission review has no request.")

    # Not decoded yet: the bodies can be of any type here.
    raw_body = payload.get('object') or payload.get('oldObject')
    raw_body = raw_body if isinstance(raw_body, Mapping) else {}
    objlogger = loggers.ObjectLogger(body=raw_body, uid=payload.get('uid'))
    decoder = decoding.RequestDecoder(
        registry=registry.resources,
        disallow_unknown_fields=settings.admission.disallow_unknown_fields,
    )

    warnings: list[str] = []
    jsonpatch: patches.JSONPatch = []
    error: errors.AdmissionError | None = None
    try:
        if webhook_type is WebhookType.DEFAULTING:
            jsonpatch = await defaulting.admit(
                payload,
                decoder=decoder,
                callbacks=registry.defaulting,
                strict_deprecation=settings.admission.strict_deprecation,
                client=client,
                warnings=warnings,
                logger=objlogger,
            )
        else:
            await validation.admit(
                payload,
                decoder=decoder,
                callbacks=registry.validation,
                client=client,
                warnings=warnings,
                logger=objlogger,
            )
    except errors.AdmissionError as e:
        objlogger.warning(f"{webhook_type.value.capitalize()} admission is denied: {e}")
        error = e
    except Exception as e:
        objlogger.exception(f"{webhook_type.value.capitalize()} admission has failed: {e}")
        error = errors.AdmissionError(str(e) or repr(e), code=500)

    response = build_response(request=request, error=error, warnings=warnings, jsonpatch=jsonpatch)
    sink.report_admission(webhook=webhook_type.value, request=request, response=response,
                          duration=time.monotonic() - started)
    return response


def build_response(
        *,
        request: Mapping[str, Any],
        error: errors.AdmissionError | None = None,
        warnings: Collection[str] = (),
        jsonpatch: patches.JSONPatch | None = None,
) -> reviews.Response:
    """
    Construct the admission review response to a review request.
    """
    response = reviews.Response(
        apiVersion=request.get('apiVersion', 'admission.k8s.io/v1'),
        kind=request.get('kind', 'AdmissionReview'),
        response=reviews.ResponsePayload(
            uid=(request.get('request') or {}).get('uid', ''),
            allowed=error is None))
    if warnings:
        response['response']['warnings'] = [str(warning) for warning in warnings]
    if jsonpatch and error is None:
        encoded_patch: str = base64.b64encode(json.dumps(jsonpatch).encode('utf-8')).decode('ascii')
        response['response']['patch'] = encoded_patch
        response['response']['patchType'] = 'JSONPatch'
    if error is not None:
        response['response']['status'] = reviews.ResponseStatus(
            status='Failure',
            message=str(error) or repr(error),
            reason=STATUS_REASONS.get(error.code or 500, 'Unknown'),
            code=error.code or 500,
        )
    return response
