"""Error taxonomy shared by the core and the HTTP layer."""


class TrenchMapsError(Exception):
    status_code = 500


class ValidationError(TrenchMapsError):
    """Missing or malformed caller input. Never retried."""
    status_code = 400


class ProviderError(TrenchMapsError):
    """An external dependency (RPC, Helius API) failed."""
    status_code = 500

    def __init__(self, message, detail=None):
        super().__init__(message)
        self.detail = detail


class CapacityError(TrenchMapsError):
    """Too many mints tracked at once."""
    status_code = 429
