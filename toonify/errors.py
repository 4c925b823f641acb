"""Error taxonomy shared by the handlers and the HTTP layer.

Every error carries the HTTP status it maps to; the app-level error handler
renders them as ``{"error": message}``.
"""


class ToonifyError(Exception):
    status_code = 500
    default_message = "Unexpected server error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class BadRequest(ToonifyError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(ToonifyError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(ToonifyError):
    status_code = 404
    default_message = "Image not found"


class InvalidTransition(ToonifyError):
    status_code = 409
    default_message = "Image is not in a state that allows this action"


class ConfigMissing(ToonifyError):
    status_code = 500
    default_message = "Server configuration is missing"


class Throttled(ToonifyError):
    """Generation service rate limit. Only seen inside the generation client."""

    status_code = 429
    default_message = "Generation service is throttling requests"


class PaymentFailed(ToonifyError):
    status_code = 502
    default_message = "Stripe checkout session creation failed"


class GenerationFailed(ToonifyError):
    status_code = 502
    default_message = "Image generation failed"


class NoImageInResponse(GenerationFailed):
    default_message = "No image was generated"


class UpstreamUnreachable(GenerationFailed):
    default_message = "Upstream service unreachable"


class StorageFailed(ToonifyError):
    status_code = 502
    default_message = "Failed to store generated image"
