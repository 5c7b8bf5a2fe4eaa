"""Domain exceptions raised below the HTTP edge."""


class GatehouseError(Exception):
    """Base class for all gatehouse errors."""


class ConfigurationError(GatehouseError):
    """Invalid or incomplete configuration. Fatal at startup, never shown to callers."""


class ProviderError(GatehouseError):
    """An identity provider returned something we cannot use (HTTP failure, bad token, bad assertion)."""


class WebserviceAuthError(GatehouseError):
    """A webservice caller was refused.

    Carries the result code and the generic message the HTTP edge returns.
    """

    def __init__(self, code: str, message: str, status_code: int):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.status_code = status_code
