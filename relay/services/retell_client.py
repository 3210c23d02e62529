"""
Retell REST API client - server-held bearer key, used by the dashboard
proxy endpoint and by call_ended enrichment.

Auth: Bearer token via RETELL_API_KEY.
Docs: https://docs.retellai.com/api-references
"""
import logging
from typing import Any, Optional

import httpx

from relay.errors import ConfigurationError, DownstreamError, PayloadValidationError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Retell"
ALLOWED_METHODS = {"GET", "POST", "PATCH", "PUT", "DELETE"}


def _build_client() -> httpx.AsyncClient:
    """Create an HTTP client for the Retell API. Tests patch this."""
    from relay.config import get_settings
    settings = get_settings()
    return httpx.AsyncClient(
        base_url=settings.retell_api_base_url,
        timeout=settings.http_timeout_seconds,
    )


def _auth_headers() -> dict:
    from relay.config import get_settings
    api_key = get_settings().retell_api_key
    if not api_key:
        raise ConfigurationError("RETELL_API_KEY not configured")
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


async def retell_request(
    endpoint: str,
    method: str = "GET",
    body: Optional[Any] = None,
) -> Any:
    """
    Forward one request to the Retell API and return its decoded JSON.

    Raises:
        ConfigurationError: RETELL_API_KEY is not set.
        PayloadValidationError: endpoint is missing or not a relative path.
        DownstreamError: Retell answered non-2xx or could not be reached.
    """
    headers = _auth_headers()

    if not endpoint or "://" in endpoint:
        raise PayloadValidationError("endpoint must be a Retell API path, e.g. /list-calls")
    if not endpoint.startswith("/"):
        endpoint = "/" + endpoint

    method = (method or "GET").upper()
    if method not in ALLOWED_METHODS:
        raise PayloadValidationError(f"Unsupported method: {method}")

    logger.info("Retell API %s request to %s", method, endpoint)

    try:
        async with _build_client() as client:
            response = await client.request(
                method,
                endpoint,
                headers=headers,
                json=body if body is not None else None,
            )
    except httpx.HTTPError as e:
        logger.error("Retell API unreachable: %s", str(e))
        raise DownstreamError(PROVIDER_NAME, None, str(e))

    if response.status_code >= 400:
        logger.error(
            "Retell API error: %d %s", response.status_code, response.text[:300],
        )
        raise DownstreamError(PROVIDER_NAME, response.status_code, response.text)

    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        raise DownstreamError(PROVIDER_NAME, response.status_code, "Response was not JSON")


async def get_call(call_id: str) -> dict:
    """Fetch the full call record (transcript_object, call_analysis, recording)."""
    data = await retell_request(f"/get-call/{call_id}")
    logger.info(
        "Fetched Retell call %s (utterances=%d, analysis=%s)",
        call_id,
        len(data.get("transcript_object") or []),
        bool(data.get("call_analysis")),
        extra={"call_id": call_id, "provider": "retell"},
    )
    return data
