"""
Google service-account authentication (OAuth2 JWT-bearer grant).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

import jwt
import pendulum
import requests
from pendulum import DateTime

from ..config import GoogleConfig
from ..domain.exceptions import AuthConfigError, AuthExchangeError
from ..domain.models import AccessToken

logger = logging.getLogger(__name__)


def _utc_now() -> DateTime:
    return pendulum.now("UTC")


class ServiceAccountTokenIssuer:
    """
    Issues bearer tokens for a service account.

    The flow has no user interaction:
    1. Build a claims set (issuer, audience, scope, issued-at, expiry)
    2. Sign it with the service account's RSA private key
    3. Exchange the signed assertion at the token endpoint
    4. Cache the access token until shortly before it expires
    """

    GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    ASSERTION_LIFETIME_SECONDS = 3600
    SIGNING_ALGORITHM = "RS256"

    def __init__(
        self,
        client_email: str,
        private_key: str,
        token_uri: str = "https://oauth2.googleapis.com/token",
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        refresh_margin_seconds: int = 60,
        backoff_base_seconds: float = 0.5,
        backoff_cap_seconds: float = 4.0,
        clock: Callable[[], DateTime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the issuer.

        Args:
            client_email: Service-account identity, used as assertion issuer
            private_key: PEM-encoded RSA private key of the service account
            token_uri: OAuth2 token endpoint, also the assertion audience
            session: Optional requests session (shared connection pool)
            timeout: Timeout in seconds for each token request
            max_attempts: Attempts per exchange before giving up
            refresh_margin_seconds: Refresh cached tokens this long before expiry
        """
        self.client_email = client_email
        self.token_uri = token_uri
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.refresh_margin_seconds = refresh_margin_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_cap_seconds = backoff_cap_seconds

        self._private_key = private_key
        self._session = session or requests.Session()
        self._clock = clock
        self._sleep = sleep

        self._cache: Dict[str, AccessToken] = {}
        self._refresh_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: GoogleConfig,
        session: Optional[requests.Session] = None,
    ) -> "ServiceAccountTokenIssuer":
        """
        Build an issuer from the google config section.

        Raises:
            AuthConfigError: If the service-account email or key is missing
        """
        if not config.client_email:
            raise AuthConfigError("google.client_email is not configured")

        return cls(
            client_email=config.client_email,
            private_key=config.resolve_private_key(),
            token_uri=config.token_uri,
            session=session,
            timeout=config.request_timeout_seconds,
            max_attempts=config.max_attempts,
            refresh_margin_seconds=config.token_refresh_margin_seconds,
        )

    def issue_token(self, scope: str) -> AccessToken:
        """
        Get a valid token for ``scope``, from cache or by a fresh exchange.

        Concurrent callers that find the cache stale wait on one exchange
        instead of each signing their own assertion.

        Raises:
            AuthConfigError: If required secret material is absent or unusable
            AuthExchangeError: If the token endpoint rejects the assertion
        """
        cached = self._fresh_cached(scope)
        if cached:
            return cached

        with self._refresh_lock:
            cached = self._fresh_cached(scope)
            if cached:
                return cached

            token = self._exchange_with_retry(scope)
            self._cache[scope] = token
            logger.info(
                "Issued access token for scope %s (expires %s)",
                scope,
                token.expires_at.to_iso8601_string(),
            )
            return token

    def get_access_token(self, scope: str, force_refresh: bool = False) -> str:
        """Return just the bearer string for ``scope``."""
        if force_refresh:
            self.clear_cache(scope)
        return self.issue_token(scope).value

    def clear_cache(self, scope: Optional[str] = None) -> None:
        """Drop cached tokens (all of them, or one scope's)."""
        with self._refresh_lock:
            if scope is None:
                self._cache.clear()
            else:
                self._cache.pop(scope, None)

    def _fresh_cached(self, scope: str) -> Optional[AccessToken]:
        token = self._cache.get(scope)
        if token and token.is_fresh(self._clock(), self.refresh_margin_seconds):
            return token
        return None

    def _exchange_with_retry(self, scope: str) -> AccessToken:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._exchange(scope)
            except AuthExchangeError as exc:
                if not exc.retryable or attempt == self.max_attempts:
                    raise
                delay = min(
                    self.backoff_cap_seconds,
                    self.backoff_base_seconds * 2 ** (attempt - 1),
                )
                logger.warning(
                    "Token exchange attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                self._sleep(delay)

        raise AuthExchangeError("Token exchange was not attempted")  # pragma: no cover

    def build_assertion(self, scope: str, now: DateTime) -> str:
        """
        Sign the claims assertion for ``scope``.

        Raises:
            AuthConfigError: If the identity or key is missing or cannot sign
        """
        if not self.client_email or not self._private_key:
            raise AuthConfigError(
                "Service-account credentials are incomplete (client email or private key missing)"
            )

        issued_at = int(now.timestamp())
        claims = {
            "iss": self.client_email,
            "scope": scope,
            "aud": self.token_uri,
            "iat": issued_at,
            "exp": issued_at + self.ASSERTION_LIFETIME_SECONDS,
        }

        try:
            return jwt.encode(claims, self._private_key, algorithm=self.SIGNING_ALGORITHM)
        except (ValueError, TypeError, jwt.exceptions.PyJWTError) as exc:
            raise AuthConfigError(f"Could not sign assertion with the private key: {exc}") from exc

    def _exchange(self, scope: str) -> AccessToken:
        now = self._clock()
        assertion = self.build_assertion(scope, now)

        try:
            response = self._session.post(
                self.token_uri,
                data={"grant_type": self.GRANT_TYPE, "assertion": assertion},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise AuthExchangeError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code >= 400:
            # Throttling and server errors are transient, a rejected grant is not
            retryable = response.status_code == 429 or response.status_code >= 500
            raise AuthExchangeError(
                f"Token endpoint rejected the assertion "
                f"(HTTP {response.status_code}): {_error_description(response)}",
                retryable=retryable,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthExchangeError(f"Token endpoint returned invalid JSON: {exc}") from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise AuthExchangeError(
                "Token endpoint response did not contain an access token",
                retryable=False,
            )

        try:
            expires_in = int(payload.get("expires_in") or self.ASSERTION_LIFETIME_SECONDS)
        except (TypeError, ValueError) as exc:
            raise AuthExchangeError(
                f"Token endpoint returned an invalid expires_in: {payload.get('expires_in')!r}",
                retryable=False,
            ) from exc
        return AccessToken(
            value=access_token,
            expires_at=now.add(seconds=expires_in),
            scope=scope,
        )


def _error_description(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return payload.get("error_description") or payload.get("error") or str(payload)
    return str(payload)
