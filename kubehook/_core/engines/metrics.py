"""
Metrics of the admission & conversion reviews.

The framework does not bring any metrics backend. Instead, the operators
can pass their own sink (e.g. one based on prometheus-client or OpenTelemetry)
to the runtime; by default, the metrics go nowhere.
"""
from collections.abc import Mapping
from typing import Any, Protocol


class MetricsSink(Protocol):

    def report_admission(
            self,
            *,
            webhook: str,
            request: Mapping[str, Any],
            response: Mapping[str, Any],
            duration: float,
    ) -> None:
        """
        Report one admission review: its request & response payloads.

        The request's operation, kind, resource, name & namespace, and
        the response's ``allowed`` flag are the suggested labels.
        """

    def report_conversion(
            self,
            *,
            request: Mapping[str, Any],
            response: Mapping[str, Any],
            duration: float,
    ) -> None:
        """ Report one conversion review: its request & response payloads. """


class NullMetrics:
    """ A sink that ignores all the metrics. """

    def report_admission(self, **_: Any) -> None:
        pass

    def report_conversion(self, **_: Any) -> None:
        pass
