"""Exceptions raised by the ResourceQuota Autoscaler."""


class QuotaAutoscalerError(Exception):
    """Base class for controller errors."""


class RenderError(QuotaAutoscalerError):
    """A limit expression could not be rendered into a quantity."""

    def __init__(self, limit: str, expression: str, reason: str):
        self.limit = limit
        self.expression = expression
        self.reason = reason
        super().__init__(f"failed to render limit {limit!r} from {expression!r}: {reason}")


class ReconcileCancelled(QuotaAutoscalerError):
    """The reconciliation was stopped before it completed."""
