"""
Daraja OAuth client.

GET /oauth/v1/generate?grant_type=client_credentials with HTTP Basic
auth over consumer key/secret. One request per call: no caching, no
retry. Callers that want a cache must add an expiry-aware one on top.
"""

from typing import Optional

import requests

from mpesa_gateway.errors import AuthError, ProviderError
from mpesa_gateway.models.payment import AccessToken, ProviderCredentials
from mpesa_gateway.providers.credentials import require_valid
from mpesa_gateway.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 15
DEFAULT_EXPIRES_IN = 3599


class TokenClient:
    """Exchanges consumer key/secret for a short-lived bearer token."""

    _EP_AUTH = "/oauth/v1/generate"

    def __init__(
        self,
        credentials: ProviderCredentials,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.credentials = require_valid(credentials)
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.credentials.api_base_url}{self._EP_AUTH}"

    def get_access_token(self) -> AccessToken:
        """
        Fetch a fresh access token.

        Raises:
            AuthError: non-2xx response, malformed body or connection failure
            ProviderError: the request timed out (timeout=True)
        """
        try:
            resp = self._session.get(
                self.url,
                params={"grant_type": "client_credentials"},
                auth=(self.credentials.consumer_key, self.credentials.consumer_secret),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            logger.warning("Daraja token request timed out after %ss", self.timeout)
            raise ProviderError(
                f"Daraja token request timed out after {self.timeout}s", timeout=True
            ) from exc
        except requests.RequestException as exc:
            logger.error("Daraja token request failed: %s", exc)
            raise AuthError(f"Failed to obtain access token: {exc}") from exc

        if not resp.ok:
            logger.error("Daraja token request rejected: HTTP %s", resp.status_code)
            raise AuthError(
                f"Authentication failed: HTTP {resp.status_code}",
                provider_status=resp.status_code,
                body=resp.text[:300],
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise AuthError(
                "Authentication failed: token response is not JSON",
                provider_status=resp.status_code,
                body=resp.text[:300],
            ) from exc

        value = data.get("access_token") if isinstance(data, dict) else None
        if not value:
            raise AuthError(
                "Authentication failed: token response has no access_token",
                provider_status=resp.status_code,
                body=resp.text[:300],
            )

        try:
            expires_in = int(data.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        logger.debug("Daraja access token obtained (expires in %ds)", expires_in)
        return AccessToken(value=value, expires_in_seconds=expires_in)
