class RelayError(Exception):
    """Base class for failures the relay reports to its callers."""

    status_code = 500


class ValidationError(RelayError):
    status_code = 400


class InvalidRequest(ValidationError):
    pass


class SignatureVerificationError(RelayError):
    status_code = 400


class NotFound(RelayError):
    status_code = 404


class UpstreamProcessorError(RelayError):
    pass


ProcessorError = UpstreamProcessorError


class RateLookupFailed(RelayError):
    pass


class DownstreamDeliveryError(RelayError):
    pass


class FallbackPersistenceError(RelayError):
    pass


class ConfigurationError(RelayError):
    pass
