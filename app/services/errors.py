"""
Error taxonomy shared by the gateways, the orchestrator and the HTTP layer.

Every error that may reach a client carries an HTTP status code and a
client-safe message. Internal detail (upstream bodies, credentials) stays
in the logs.
"""
from typing import Optional


class AstroAskError(Exception):
    status_code: int = 500
    public_message: str = "Something went wrong"

    def __init__(self, message: str = "", public_message: str = ""):
        super().__init__(message or public_message or self.public_message)
        if public_message:
            self.public_message = public_message


class ValidationError(AstroAskError):
    """Missing or malformed request fields. Never contacts an upstream."""

    status_code = 400
    public_message = "Missing birth details"

    def __init__(self, message: str = "", public_message: str = ""):
        super().__init__(message, public_message=public_message)


class UpstreamAuthError(AstroAskError):
    """Credential exchange with the astrology provider failed."""

    public_message = "Failed to authenticate with astrology provider"


class UpstreamUnavailableError(AstroAskError):
    """Network failure, timeout or non-2xx status from an upstream."""

    public_message = "Upstream service unavailable"

    def __init__(self, message: str = "", public_message: str = "", upstream_status: Optional[int] = None):
        super().__init__(message, public_message=public_message)
        self.upstream_status = upstream_status

    @property
    def transient(self) -> bool:
        """Network errors, timeouts, 429 and 5xx may succeed on a later attempt."""
        status = self.upstream_status
        return status is None or status == 429 or status >= 500


class UpstreamMalformedResponseError(AstroAskError):
    """Upstream answered 2xx with a body that is not the expected JSON."""

    public_message = "Upstream service returned an invalid response"


class CacheIOError(AstroAskError):
    """Local cache storage failure. Recovered inside the cache store."""

    public_message = "Cache storage failure"
