class ApplicationError(Exception):
    pass


class DecodeError(ApplicationError):
    """The embedded resource could not be decoded into a Pod."""

    def __init__(self, detail):
        super().__init__(detail)
        self.detail = detail


class InvalidReviewError(ApplicationError):
    pass


class ConfigurationError(ApplicationError):
    pass


class ProviderError(ApplicationError):
    pass
