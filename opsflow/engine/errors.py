"""Exceptions raised by the opsflow engines."""


class OpsflowError(Exception):
    """Base class for engine errors."""


class InvalidEventPayload(OpsflowError, ValueError):
    """Event payload failed catalog schema validation."""

    def __init__(self, event_type: str, errors: list):
        self.event_type = event_type
        self.errors = errors
        super().__init__(f"Invalid payload for {event_type}: {'; '.join(errors)}")


class InvalidInputError(OpsflowError, ValueError):
    """Manual input rejected before any persistence."""


class GreyAreaNotFound(OpsflowError, LookupError):
    """Referenced grey area does not exist."""


class TaskNotFound(OpsflowError, LookupError):
    """Referenced task does not exist."""


class InvalidTransitionError(OpsflowError):
    """Requested status transition is not allowed from the current status."""

    def __init__(self, entity: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"{entity} cannot move from {from_status} to {to_status}")


class EscalationLimitError(OpsflowError):
    """Escalation would exceed the configured maximum level."""
