"""
Payment domain errors.

Each error carries the HTTP status the routes translate it to. Everything
raised by the payment services derives from PaymentError.
"""


class PaymentError(Exception):
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.public_message)

    @property
    def detail(self) -> str:
        return str(self)


# Validation ----------------------------------------------------------------

class ValidationError(PaymentError):
    status_code = 400
    public_message = "Invalid request"


class MissingFields(ValidationError):
    public_message = "Missing required fields"


class InvalidClassification(ValidationError):
    public_message = "Invalid job classification"


# Authorization -------------------------------------------------------------

class AuthorizationError(PaymentError):
    status_code = 403
    public_message = "Not allowed"


class JobPostNotFound(AuthorizationError):
    status_code = 404
    public_message = "Job post not found"


class ClientNotFound(AuthorizationError):
    status_code = 404
    public_message = "Client profile not found"


# Webhook trust -------------------------------------------------------------

class InvalidSignature(PaymentError):
    status_code = 400
    public_message = "Invalid signature"


class MalformedEvent(ValidationError):
    public_message = "Malformed webhook payload"


# Upstream ------------------------------------------------------------------

class UpstreamError(PaymentError):
    status_code = 502
    public_message = "Upstream service failure"


class ProcessorError(UpstreamError):
    public_message = "Payment processor error"


class MailerError(UpstreamError):
    public_message = "Email provider error"


class AlertDispatchError(UpstreamError):
    public_message = "Alert dispatch failed"


# Persistence ---------------------------------------------------------------

class PersistenceError(PaymentError):
    status_code = 500
    public_message = "Failed to persist job post"


# State machine -------------------------------------------------------------

class InvalidTransition(PaymentError):
    status_code = 409

    def __init__(self, entity: str, current: str, event: str):
        self.entity = entity
        self.current = current
        self.event = event
        super().__init__(f"{entity} cannot apply {event} from {current}")
