"""
Errors of the admission & conversion webhooks.

The admission errors are turned into the denials of the admission reviews:
with the error's message and code in the response's status. They never crash
the webhook server and are never propagated beyond one admission review.

The users can raise :class:`AdmissionError` from their callbacks to deny
the request with a specific message and code. Any other errors of the callbacks
are wrapped into :class:`CallbackError`, i.e. HTTP 500.

The webhook errors are of the HTTP level: if the request cannot be parsed
as a review at all, there is nothing to respond to. They are turned into
the HTTP error statuses instead of the admission denials.
"""
from kubehook._cogs.structs import fielderrors


class AdmissionError(Exception):
    """
    Raised by the callbacks or by the framework to deny the admission.

    The message is shown to the users as is, e.g. in kubectl's output.
    The code is put into the status of the admission response.
    """
    code: int = 500

    def __init__(
            self,
            message: str | None = '',
            code: int | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class DecodeError(AdmissionError):
    """ The object of the review cannot be decoded into its resource class. """
    code = 400


class UnhandledKindError(AdmissionError):
    """ The kind of the object is not registered with the operator. """
    code = 400


class FieldViolationError(AdmissionError):
    """ A base for the denials with the offending fields collected. """
    code = 403

    def __init__(
            self,
            message: str,
            error: fielderrors.FieldError,
            code: int | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.error = error


class ValidationError(FieldViolationError):
    """ The resource's own validation has found some errors. """


class DeprecatedFieldError(FieldViolationError):
    """ The deprecated fields are set or changed while it is not allowed. """


class CallbackError(AdmissionError):
    """ The users' callback has failed with an arbitrary error. """
    code = 500


class ConversionError(AdmissionError):
    """ The objects cannot be converted to the desired version. """
    code = 400


class RegistrationError(Exception):
    """
    The webhook configuration cannot be reconciled to the desired state.

    E.g. the serving secret is absent, or the configuration itself is absent,
    or the webhook of the configuration has no service to inject the path into.
    The reconcilers retry the failed configurations with a backoff.
    """


class WebhookError(Exception):
    """
    A request cannot be served as a review: responded with an HTTP error.
    """
    status: int = 400


class UnsupportedMediaTypeError(WebhookError):
    status = 415


class MalformedRequestError(WebhookError):
    status = 400


class UnknownWebhookError(WebhookError):
    status = 404
