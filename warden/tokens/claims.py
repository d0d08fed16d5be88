"""
Claims construction for Warden tokens.

Builds the standard claim set (iss, sub, aud, typ, iat, exp, jti) around
the caller's own claims.

Author: Warden Team
Date: 2026-10-16
"""

import logging
import math
import time
import uuid
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from warden.core.config_manager import WardenConfig
from warden.core.resolver import resolve
from warden.exceptions import InvalidClaimsError, InvalidTTLError, SerializerError
from warden.tokens.serializer import PermissionsEncoder, ResourceSerializer
from warden.tokens.types import Claims, freeze

logger = logging.getLogger(__name__)

# Option keys carried in a caller's claims mapping, never written into a token
OPTION_KEYS = ("ttl", "secret", "headers")

# Claims a refresh or exchange always regenerates
REGENERATED_CLAIMS = ("jti", "iat", "exp", "nbf")

TTL_UNITS = {
    "second": 1,
    "seconds": 1,
    "minute": 60,
    "minutes": 60,
    "hour": 60 * 60,
    "hours": 60 * 60,
    "day": 24 * 60 * 60,
    "days": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
    "weeks": 7 * 24 * 60 * 60,
}


def timestamp() -> int:
    """Current time in integer seconds since the epoch."""
    return int(time.time())


def stringify_keys(mapping: Optional[Mapping[Any, Any]]) -> Dict[str, Any]:
    """Copy a mapping with every key converted to ``str`` (``None`` gives ``{}``)."""
    if mapping is None:
        return {}
    return {str(k): v for k, v in mapping.items()}


def split_options(claims: Optional[Mapping[Any, Any]]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Separate per-call options from claims.

    Returns:
        Tuple of (claims without option keys, options)
    """
    claims = stringify_keys(claims)
    options = {key: claims.pop(key) for key in OPTION_KEYS if key in claims}
    return claims, options


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidTTLError(f"TTL count must be a number, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise InvalidTTLError(f"TTL count is not numeric: {value!r}") from None
    raise InvalidTTLError(f"TTL count must be a number, got {value!r}")


def ttl_to_seconds(ttl: Any) -> int:
    """
    Convert a resolved TTL to seconds.

    Accepts a seconds count or a ``(count, unit)`` pair where unit is one
    of seconds, minutes, hours, days or weeks. Counts may be numeral strings.

    Raises:
        InvalidTTLError: If the TTL cannot be interpreted or is not positive
    """
    if isinstance(ttl, (list, tuple)):
        if len(ttl) != 2:
            raise InvalidTTLError(f"TTL pair must be (count, unit), got {ttl!r}")
        count, unit = ttl
        multiplier = TTL_UNITS.get(str(getattr(unit, "value", unit)).strip().lower())
        if multiplier is None:
            raise InvalidTTLError(f"Unknown TTL unit: {unit!r}")
        seconds = _to_number(count) * multiplier
    else:
        seconds = _to_number(ttl)

    if not math.isfinite(seconds) or int(seconds) <= 0:
        raise InvalidTTLError(f"TTL must be at least one second, got {ttl!r}")
    return int(seconds)


def check_lifetime(claims: Mapping[str, Any]) -> None:
    """
    Enforce exp > iat when both are present.

    Raises:
        InvalidClaimsError: If exp is not later than iat or either is not numeric
    """
    if "iat" not in claims or "exp" not in claims:
        return
    iat, exp = claims["iat"], claims["exp"]
    try:
        if exp <= iat:
            raise InvalidClaimsError(f"exp ({exp}) must be later than iat ({iat})")
    except TypeError:
        raise InvalidClaimsError("iat and exp must be numeric timestamps") from None


class ClaimsBuilder:
    """
    Builds the full claim set for a resource.

    Caller-supplied claims win over every computed default.
    """

    def __init__(
        self,
        config: WardenConfig,
        serializer: ResourceSerializer,
        permissions_encoder: Optional[PermissionsEncoder] = None,
        clock: Callable[[], int] = timestamp,
    ):
        self.config = config
        self.serializer = serializer
        self.permissions_encoder = permissions_encoder
        self.clock = clock

    def build(
        self,
        resource: Any,
        requested_type: Optional[str] = None,
        caller_claims: Optional[Mapping[Any, Any]] = None,
        ttl: Any = None,
    ) -> Claims:
        """
        Build claims for a resource.

        Args:
            resource: Resource the token is minted for
            requested_type: Token type used when the caller claims carry no
                ``typ``; falls back to the configured default
            caller_claims: Extra claims, option keys already removed
            ttl: TTL descriptor overriding configuration

        Returns:
            Read-only claims mapping

        Raises:
            SerializerError: If the serializer cannot identify the resource
            InvalidTTLError: If the TTL cannot be interpreted
            InvalidClaimsError: If exp would not be later than iat
        """
        claims = stringify_keys(caller_claims)

        perms = claims.pop("perms", None)
        if perms:
            if self.permissions_encoder is not None:
                claims = stringify_keys(self.permissions_encoder.encode(claims, perms))
            else:
                claims["pem"] = perms

        subject = self.serializer.for_token(resource)
        if not isinstance(subject, str):
            raise SerializerError("invalid_subject", f"Serializer returned {type(subject).__name__}, expected str")

        token_type = claims.get("typ") or requested_type or self.config.default_token_type
        token_type = str(token_type)

        iat = claims["iat"] if "iat" in claims else self.clock()
        if "exp" in claims:
            exp = claims["exp"]
        else:
            descriptor = ttl if ttl is not None else self.config.ttl_for(token_type)
            try:
                resolved = resolve(descriptor)
            except Exception as e:
                raise InvalidTTLError(f"TTL resolver failed: {e}") from e
            exp = iat + ttl_to_seconds(resolved)

        built = {
            "iss": self.config.issuer,
            "aud": subject,
            "jti": str(uuid.uuid4()),
        }
        built.update(claims)
        built.update({"sub": subject, "typ": token_type, "iat": iat, "exp": exp})
        check_lifetime(built)

        logger.debug(f"Built claims for sub={subject}, typ={token_type}, jti={built['jti']}")
        return freeze(built)
