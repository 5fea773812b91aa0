from django.core.exceptions import ImproperlyConfigured


class ConverterError(Exception):
    """Base class for everything the conversion pipeline raises."""

    code = "ConverterError"


class IntakeRejected(ConverterError):
    """The upload failed intake validation; nothing was written to disk."""

    def __init__(self, reason: str, message: str = ""):
        self.code = reason
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)


class EngineError(ConverterError):
    """The engine failed, crashed, timed out or broke its output contract."""

    code = "ConversionFailed"

    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = ""):
        self.message = message
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class NotFoundError(ConverterError):
    code = "NotFound"


class CleanupError(ConverterError):
    # Logged by the lifecycle manager, never propagated to a caller.
    code = "CleanupFailed"


class ConfigurationError(ConverterError, ImproperlyConfigured):
    code = "ConfigurationError"
