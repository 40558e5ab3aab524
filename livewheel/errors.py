class WheelError(Exception):
    """Base class for wheel errors."""


class RelayError(WheelError):
    """The relay/registry collaborator rejected a request or was unreachable."""


class SegmentValidationError(WheelError):
    """A segment list sent to the registry is malformed."""


class WebhookAuthError(WheelError):
    """Webhook token missing or wrong."""


class SurfaceError(WheelError):
    """The rendering surface was asked to do something it cannot."""
