"""
Token codecs.

A codec turns claims into a signed wire token and back. ``JWTCodec`` is the
default and produces compact JWS tokens with PyJWT; any object exposing the
same three operations can be handed to Warden instead.

Author: Warden Team
Date: 2026-10-16
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import jwt
from jwt import exceptions as jwt_exceptions

from warden.exceptions import (
    EncodingError,
    InvalidSignatureError,
    InvalidTokenError,
    KeyResolutionError,
    MissingSignatureError,
    UnsupportedAlgorithmError,
)
from warden.tokens.types import CandidateKey, Claims, freeze

logger = logging.getLogger(__name__)

# Claim checks are done by ClaimVerifier; PyJWT only checks the signature
DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "require": [],
}


class TokenCodec(ABC):
    """Capability set every token format implements."""

    @abstractmethod
    def encode(
        self,
        claims: Mapping[str, Any],
        key: Any,
        algorithm: str,
        headers: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Sign claims into a wire token."""
        pass

    @abstractmethod
    def decode_unverified(self, token: str) -> Tuple[Dict[str, Any], Claims]:
        """Return (header, claims) without checking the signature."""
        pass

    @abstractmethod
    def decode_and_verify_signature(
        self,
        token: str,
        candidates: Sequence[CandidateKey],
        allowed_algorithms: Sequence[str],
    ) -> Claims:
        """Return claims once one candidate key verifies the signature."""
        pass


class JWTCodec(TokenCodec):
    """Compact JWS codec backed by PyJWT."""

    def encode(
        self,
        claims: Mapping[str, Any],
        key: Any,
        algorithm: str,
        headers: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Sign claims as a compact JWS.

        Raises:
            UnsupportedAlgorithmError: If PyJWT has no such algorithm
            EncodingError: If claims or headers are not JSON encodable
            KeyResolutionError: If the key does not fit the algorithm
        """
        extra_headers = {k: v for k, v in (headers or {}).items() if k != "alg"}
        try:
            return jwt.encode(dict(claims), key, algorithm=algorithm, headers=extra_headers or None)
        except NotImplementedError:
            raise UnsupportedAlgorithmError(f"Algorithm {algorithm} is not supported") from None
        except jwt_exceptions.InvalidKeyError as e:
            raise KeyResolutionError(f"Key cannot sign with {algorithm}: {e}") from e
        except (jwt_exceptions.PyJWTError, TypeError, ValueError) as e:
            raise EncodingError(f"Error encoding to JSON: {e}") from e

    def decode_unverified(self, token: str) -> Tuple[Dict[str, Any], Claims]:
        """
        Decode header and claims without checking the signature.

        Raises:
            InvalidTokenError: If the token is malformed
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise InvalidTokenError("Token must have three dot-separated parts")
        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.decode(token, options={"verify_signature": False})
        except (jwt_exceptions.PyJWTError, TypeError, ValueError) as e:
            raise InvalidTokenError(f"Malformed token: {e}") from None
        return header, freeze(claims)

    def decode_and_verify_signature(
        self,
        token: str,
        candidates: Sequence[CandidateKey],
        allowed_algorithms: Sequence[str],
    ) -> Claims:
        """
        Verify the signature against each usable candidate in turn.

        The header ``alg`` is authoritative and must be allow-listed; only
        candidates whose algorithm set contains it are tried.

        Raises:
            InvalidTokenError: If the token is malformed, its algorithm is not
                allowed, or no candidate verifies it
            MissingSignatureError: If the signature segment is empty
        """
        header, _ = self.decode_unverified(token)
        if not token.rsplit(".", 1)[1]:
            raise MissingSignatureError()

        algorithm = header.get("alg")
        if algorithm not in allowed_algorithms:
            raise InvalidTokenError(f"Algorithm {algorithm!r} is not allowed")

        usable = [c for c in candidates if c.allows(algorithm)]
        for index, candidate in enumerate(usable):
            try:
                return self._verify_with(token, candidate, algorithm)
            except InvalidSignatureError:
                logger.debug(f"Candidate key {index} did not verify the token")

        raise InvalidTokenError(f"No candidate key verified the token ({len(usable)} tried)")

    @staticmethod
    def _verify_with(token: str, candidate: CandidateKey, algorithm: str) -> Claims:
        try:
            claims = jwt.decode(token, candidate.key, algorithms=[algorithm], options=DECODE_OPTIONS)
        except (jwt_exceptions.PyJWTError, TypeError, ValueError) as e:
            raise InvalidSignatureError(str(e)) from None
        return freeze(claims)
