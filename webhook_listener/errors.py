"""
Exceptions raised by the webhook listener
"""
from typing import Optional


class WebhookListenerError(Exception):
    """Base class for every error raised by this package."""


class StreamReadError(WebhookListenerError):
    """The inbound request body could not be read."""


class BodyTooLargeError(StreamReadError):
    """The inbound request body is larger than the configured limit."""

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds {limit} bytes")
        self.limit = limit


class MalformedPayloadError(WebhookListenerError):
    """The request body is not a webhook event."""


class ForwardDeliveryError(WebhookListenerError):
    """A payload could not be delivered to a forwarding target."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Unable to forward webhook to {url}: {reason}")
        self.url = url
        self.reason = reason


class ListenerBindError(WebhookListenerError):
    """The relay server could not bind its socket."""


class ListenerCloseError(WebhookListenerError):
    """The relay server socket could not be closed cleanly."""


class TunnelError(WebhookListenerError):
    """The public tunnel could not be opened or closed."""


class ApiError(WebhookListenerError):
    """The platform API rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
