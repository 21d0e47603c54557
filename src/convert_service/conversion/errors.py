class ConvertServiceError(Exception):
    """Base class for errors raised by the conversion domain layer."""

    code = "internal"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(ConvertServiceError):
    code = "validation_error"


class InvalidType(ValidationError):
    code = "unsupported_media_type"


class TooLarge(ValidationError):
    code = "payload_too_large"


class NotFound(ConvertServiceError):
    code = "not_found"


class FileNotFound(NotFound):
    pass


class JobNotFound(NotFound):
    pass


class DuplicateJob(ConvertServiceError):
    code = "duplicate_job"


class InvalidTransition(ConvertServiceError):
    code = "invalid_transition"


class ProviderError(ConvertServiceError):
    """Failure reported by (or while talking to) the conversion provider."""

    code = "provider_error"

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PollTimeout(ConvertServiceError):
    code = "timeout"


class PollCancelled(ConvertServiceError):
    code = "cancelled"


class ConversionFailed(ConvertServiceError):
    code = "conversion_failed"


class InternalError(ConvertServiceError):
    code = "internal"
