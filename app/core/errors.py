"""Exception types raised by the pricing core and its collaborators"""


class PricingServiceError(Exception):
    """Base exception for the pricing service"""
    pass


class RateConfigError(PricingServiceError):
    """Rate/rule data file is missing entries or internally inconsistent"""
    pass


class MalformedRequestError(PricingServiceError, TypeError):
    """The rate engine was called with something that is not a booking request"""
    pass


class SignalEvaluationFailure(PricingServiceError):
    """A single detection signal could not be evaluated.

    Never leaves the platform resolver; it is logged and treated as no match.
    """

    def __init__(self, signal, cause: Exception):
        self.signal = signal
        self.cause = cause
        super().__init__(f"{signal} check failed: {cause}")


class DriverPortalError(PricingServiceError):
    """Driver portal request failed after all retries"""
    pass
