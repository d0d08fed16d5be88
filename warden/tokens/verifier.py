"""
Claim verification.

Checks a decoded claim set against the configured issuer, the clock and the
caller's expected literal claims. The first failing check is reported.
"""

import logging
from typing import Any, Callable, Mapping, Optional

from warden.core.config_manager import WardenConfig
from warden.exceptions import (
    InvalidAudienceError,
    InvalidClaimError,
    InvalidIssuerError,
    InvalidTypeError,
    TokenExpiredError,
    TokenNotYetValidError,
)
from warden.tokens.claims import stringify_keys, timestamp
from warden.tokens.types import Claims

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ClaimVerifier:
    """
    Validates claims in a fixed order.

    ``allowed_drift`` widens every time check by the configured number of
    seconds in the token's favour.
    """

    def __init__(self, config: WardenConfig, clock: Callable[[], int] = timestamp):
        self.config = config
        self.clock = clock

    def verify(self, claims: Claims, expected_claims: Optional[Mapping[Any, Any]] = None) -> Claims:
        """
        Verify claims.

        Args:
            claims: Claims decoded from a signature-checked token
            expected_claims: Literal claims the token must carry

        Returns:
            The claims, unchanged

        Raises:
            TokenError: The first failing check
        """
        expected = stringify_keys(expected_claims)
        expected.pop("secret", None)

        self._check_issuer(claims)
        self._check_times(claims)

        if "aud" in expected and claims.get("aud") != expected.pop("aud"):
            raise InvalidAudienceError()
        if "typ" in expected and claims.get("typ") != expected.pop("typ"):
            raise InvalidTypeError()

        for key, value in expected.items():
            if claims.get(key) != value:
                raise InvalidClaimError(key)

        return claims

    def _check_issuer(self, claims: Claims) -> None:
        if self.config.verify_issuer and claims.get("iss") != self.config.issuer:
            raise InvalidIssuerError(f"Issuer {claims.get('iss')!r} is not {self.config.issuer!r}")

    def _check_times(self, claims: Claims) -> None:
        now = self.clock()
        drift = self.config.allowed_drift

        for claim in ("nbf", "iat"):
            value = claims.get(claim)
            if value is None:
                continue
            if not _is_number(value):
                raise TokenNotYetValidError(f"Claim {claim} is not a timestamp")
            if value > now + drift:
                raise TokenNotYetValidError(f"Token {claim} {value} is after {now}")

        exp = claims.get("exp")
        if exp is not None:
            if not _is_number(exp) or exp <= now - drift:
                raise TokenExpiredError()
