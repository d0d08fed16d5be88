"""
Token lifecycle exceptions for Warden.

Every failure carries a machine-readable ``error`` code. Hook and
serializer failures carry the application's own reason verbatim.

Author: Warden Team
Date: 2026-10-16
"""

from typing import Any, Optional


class ConfigurationError(Exception):
    """Raised when required configuration is missing or malformed."""


class TokenError(Exception):
    """Base exception for token lifecycle errors."""

    def __init__(self, error: Any, error_description: Optional[str] = None):
        self.error = error
        self.error_description = error_description
        super().__init__(error_description or str(error))


class InvalidTokenError(TokenError):
    """Raised when a token is malformed or no candidate key verifies it."""

    def __init__(self, description: str = "Invalid token"):
        super().__init__("invalid_token", description)


class MissingSignatureError(TokenError):
    """Raised when the signature segment of a token is empty."""

    def __init__(self, description: str = "Token has no signature"):
        super().__init__("missing_signature", description)


class InvalidSignatureError(TokenError):
    """Raised when a signature does not match a single candidate key."""

    def __init__(self, description: str = "Invalid token signature"):
        super().__init__("invalid_signature", description)


class TokenExpiredError(TokenError):
    """Raised when the exp claim has passed."""

    def __init__(self, description: str = "Token has expired"):
        super().__init__("token_expired", description)


class TokenNotYetValidError(TokenError):
    """Raised when nbf or iat lies in the future."""

    def __init__(self, description: str = "Token is not valid yet"):
        super().__init__("token_not_yet_valid", description)


class InvalidIssuerError(TokenError):
    """Raised when the iss claim does not match the configured issuer."""

    def __init__(self, description: str = "Invalid issuer"):
        super().__init__("invalid_issuer", description)


class InvalidAudienceError(TokenError):
    """Raised when the aud claim does not match the expected audience."""

    def __init__(self, description: str = "Invalid audience"):
        super().__init__("invalid_audience", description)


class InvalidTypeError(TokenError):
    """Raised when the typ claim does not match the expected type."""

    def __init__(self, description: str = "Invalid token type"):
        super().__init__("invalid_type", description)


class InvalidClaimError(TokenError):
    """Raised when an expected literal claim does not match."""

    def __init__(self, claim: str):
        super().__init__(f"invalid_claim:{claim}", f"Claim '{claim}' does not match")
        self.claim = claim


class IncorrectTokenTypeError(TokenError):
    """Raised when a token of the wrong type is offered for exchange."""

    def __init__(self, description: str = "Token type cannot be exchanged"):
        super().__init__("incorrect_token_type", description)


class UntrustedKeySourceError(TokenError):
    """Raised when a token points at a key URL outside the trusted origins."""

    def __init__(self, description: str = "Key URL is not trusted"):
        super().__init__("untrusted_key_source", description)


class KeyResolutionError(TokenError):
    """Raised when no signing or verification key can be resolved."""

    def __init__(self, description: str = "No key material available"):
        super().__init__("key_resolution_failed", description)


class UnsupportedAlgorithmError(TokenError):
    """Raised when signing with an algorithm outside the allow-list."""

    def __init__(self, description: str = "Unsupported algorithm"):
        super().__init__("unsupported_algorithm", description)


class EncodingError(TokenError):
    """Raised when claims or headers cannot be encoded to JSON."""

    def __init__(self, description: str = "Error encoding to JSON"):
        super().__init__("json_encoding_fail", description)


class InvalidTTLError(TokenError):
    """Raised when a TTL descriptor cannot be interpreted."""

    def __init__(self, description: str = "Invalid TTL"):
        super().__init__("invalid_ttl", description)


class InvalidClaimsError(TokenError):
    """Raised when built claims would break the exp > iat invariant."""

    def __init__(self, description: str = "exp must be later than iat"):
        super().__init__("invalid_claims", description)


class HookRejected(TokenError):
    """Raised by a lifecycle hook to veto the current step."""


class SerializerError(TokenError):
    """Raised by a resource serializer that cannot map a resource or subject."""
