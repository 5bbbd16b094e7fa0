"""Error taxonomy for the widget core.

None of these escape to the host: they are raised at the point of failure
and caught at the nearest seam (storage access, per-popup evaluation).
"""


class WidgetError(Exception):
    """Base class for widget core errors."""


class StorageUnavailable(WidgetError):
    """The persistent key-value store cannot be accessed."""

    def __init__(self, operation: str, key: str, cause: Exception | None = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        super().__init__(f"Storage unavailable during {operation} of {key!r}: {cause}")


class MalformedPersistedValue(WidgetError):
    """A stored value does not parse as the expected type."""

    def __init__(self, key: str, value: str):
        self.key = key
        self.value = value
        super().__init__(f"Malformed value for {key!r}: {value!r}")


class UnknownTriggerType(WidgetError):
    """A popup definition names a trigger outside the recognised set."""

    def __init__(self, popup_id: str, trigger: object):
        self.popup_id = popup_id
        self.trigger = trigger
        super().__init__(f"Unknown trigger type {trigger!r} for popup {popup_id!r}")
