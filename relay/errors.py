"""
Error taxonomy for the ingestion pipeline and its API surface.

Each error carries the HTTP status it maps to when it reaches an endpoint.
Webhook handlers override the status for lookup misses: a call update for
an unknown call id is a server-side failure (500) so the provider retries,
while read endpoints answer 404.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for errors raised by relay services."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(RelayError):
    """A credential or environment value an endpoint needs is not set."""

    status_code = 500


class PayloadValidationError(RelayError):
    """A required payload field is missing or invalid."""

    status_code = 400


class LookupMissError(RelayError):
    """An expected row (lead, conversation) does not exist."""

    status_code = 404


class DownstreamError(RelayError):
    """An external API answered with a non-2xx status."""

    status_code = 500

    def __init__(self, provider: str, status: Optional[int], body: str):
        super().__init__(f"{provider} API error: {status} {body}".strip())
        self.provider = provider
        self.upstream_status = status
        self.body = body


class ConflictError(RelayError):
    """The delivery would duplicate a row that must be unique."""

    status_code = 409
