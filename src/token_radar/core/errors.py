"""Error taxonomy for the token radar."""


class TokenRadarError(Exception):
    """Base error."""


class InvalidInputError(TokenRadarError, ValueError):
    """Unsupported chain, malformed address or bad request arguments."""


class PolicyViolation(TokenRadarError):
    """Policy update rejected; the previous policy stays active."""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = errors or []


class UpstreamUnavailable(TokenRadarError):
    """Upstream timed out, answered non-2xx, or returned a malformed body."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
