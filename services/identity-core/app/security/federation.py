"""Verification of identity-provider ID tokens."""

from __future__ import annotations

import logging
from typing import Any

import jwt

from ..domain.contracts import FederatedIdentity
from ..domain.errors import ProviderUnavailable

logger = logging.getLogger(__name__)


class FederatedTokenVerifier:
    """Verify an OpenID Connect ID token and extract the identity claims.

    Keys come from the provider's JWKS endpoint (RS256). When a shared secret
    is configured instead, tokens are checked with HS256, which is how local
    environments and tests mint assertions without a real provider.
    """

    def __init__(
        self,
        *,
        issuer: str,
        audience: str | None = None,
        jwks_url: str | None = None,
        shared_secret: str | None = None,
        timeout_seconds: int = 10,
    ) -> None:
        if not jwks_url and not shared_secret:
            raise ValueError("either jwks_url or shared_secret is required")
        self._issuer = issuer
        self._audience = audience or None
        self._shared_secret = shared_secret or None
        self._jwks_client = (
            jwt.PyJWKClient(jwks_url, timeout=timeout_seconds)
            if jwks_url and not shared_secret
            else None
        )

    def verify(self, raw_assertion: str) -> FederatedIdentity:
        """Return the verified identity or raise ``ProviderUnavailable``."""
        if not raw_assertion:
            raise ProviderUnavailable("assertion is required")
        try:
            claims = self._decode(raw_assertion)
        except jwt.PyJWTError as exc:
            logger.warning("federated assertion rejected: %s", exc)
            raise ProviderUnavailable() from exc

        external_id = claims.get("sub")
        email = claims.get("email")
        if not external_id or not email:
            raise ProviderUnavailable("assertion is missing subject or email")
        # linking by email is only safe when the provider vouches for the address
        if str(claims.get("email_verified", True)).lower() == "false":
            raise ProviderUnavailable("assertion email is not verified")
        return FederatedIdentity(
            external_id=str(external_id),
            email=str(email),
            display_name=str(claims.get("name") or ""),
            avatar_url=str(claims.get("picture") or ""),
        )

    def _decode(self, raw_assertion: str) -> dict[str, Any]:
        options = {"verify_aud": self._audience is not None}
        if self._jwks_client is None:
            return jwt.decode(
                raw_assertion,
                self._shared_secret,
                algorithms=["HS256"],
                audience=self._audience,
                issuer=self._issuer,
                options=options,
            )
        signing_key = self._jwks_client.get_signing_key_from_jwt(raw_assertion)
        return jwt.decode(
            raw_assertion,
            signing_key.key,
            algorithms=["RS256"],
            audience=self._audience,
            issuer=self._issuer,
            options=options,
        )
