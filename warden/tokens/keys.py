"""
Secret and key material provider.

Turns a resolved secret descriptor into candidate keys, each paired with the
allowed algorithms its key family can use. Also owns the trust-gated remote
key path for tokens whose header carries a ``jku`` locator.

Author: Warden Team
Date: 2026-10-16
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa
from jwt import PyJWK
from jwt.exceptions import PyJWTError

from warden.core.config_manager import WardenConfig
from warden.core.resolver import resolve
from warden.exceptions import (
    InvalidTokenError,
    KeyResolutionError,
    UnsupportedAlgorithmError,
    UntrustedKeySourceError,
)
from warden.tokens.types import CandidateKey, KeyUrlTrustRecord, SigningKey, url_origin

logger = logging.getLogger(__name__)

KeyFetcher = Callable[[str], Mapping[str, Any]]

HMAC = "HMAC"
RSA = "RSA"
EC = "EC"
OKP = "OKP"

_PRIVATE_TYPES = (
    rsa.RSAPrivateKey,
    ec.EllipticCurvePrivateKey,
    ed25519.Ed25519PrivateKey,
    ed448.Ed448PrivateKey,
)


def algorithm_family(algorithm: str) -> Optional[str]:
    """Return the key family a JWS algorithm signs with."""
    if algorithm.startswith("HS"):
        return HMAC
    if algorithm.startswith(("RS", "PS")):
        return RSA
    if algorithm.startswith("ES"):
        return EC
    if algorithm == "EdDSA":
        return OKP
    return None


def key_family(key: Any) -> Optional[str]:
    """Return the family of a normalized key, or None if it is not key material."""
    if isinstance(key, (str, bytes)):
        return HMAC
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return RSA
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        return EC
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey,
                        ed448.Ed448PrivateKey, ed448.Ed448PublicKey)):
        return OKP
    return None


def is_private(key: Any) -> bool:
    return isinstance(key, _PRIVATE_TYPES)


def public_key_for(key: Any) -> Any:
    """Return the verification half of a key (HMAC secrets are their own)."""
    if is_private(key):
        return key.public_key()
    return key


def _load_pem(data: bytes) -> Any:
    try:
        return serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError):
        pass
    try:
        return serialization.load_pem_public_key(data)
    except (ValueError, TypeError) as e:
        raise KeyResolutionError(f"Unreadable PEM key: {e}") from None


def _from_jwk(jwk: Mapping[str, Any], allowed: Sequence[str]) -> CandidateKey:
    try:
        parsed = PyJWK(dict(jwk))
    except (PyJWTError, ValueError, TypeError, KeyError) as e:
        raise KeyResolutionError(f"Unreadable JWK: {e}") from None

    algorithms = _algorithms_for(parsed.key, allowed)
    explicit = jwk.get("alg")
    if explicit:
        algorithms = tuple(alg for alg in algorithms if alg == explicit)
    return CandidateKey(parsed.key, algorithms, jwk.get("kid"))


def _algorithms_for(key: Any, allowed: Sequence[str]) -> tuple:
    family = key_family(key)
    return tuple(alg for alg in allowed if algorithm_family(alg) == family)


def normalize(material: Any, allowed: Sequence[str]) -> List[CandidateKey]:
    """
    Normalize resolved key material into candidate keys.

    Args:
        material: str/bytes secret, PEM string, JWK or JWKS mapping, PyJWK
            or cryptography key object
        allowed: Configured algorithm allow-list

    Returns:
        Candidate keys; a JWKS yields one per key

    Raises:
        KeyResolutionError: If the material is not usable as a key
    """
    if material is None:
        raise KeyResolutionError("Secret resolved to no value")

    if isinstance(material, PyJWK):
        return [CandidateKey(material.key, _algorithms_for(material.key, allowed), material.key_id)]

    if isinstance(material, Mapping):
        if "keys" in material:
            return [_from_jwk(jwk, allowed) for jwk in material["keys"]]
        return [_from_jwk(material, allowed)]

    if isinstance(material, str) and material.lstrip().startswith("-----BEGIN"):
        material = _load_pem(material.encode("utf-8"))
    elif isinstance(material, bytes) and material.lstrip().startswith(b"-----BEGIN"):
        material = _load_pem(material)

    if isinstance(material, (str, bytes)) and len(material) == 0:
        raise KeyResolutionError("Secret resolved to an empty value")

    if key_family(material) is None:
        raise KeyResolutionError(f"Unsupported key material: {type(material).__name__}")

    return [CandidateKey(material, _algorithms_for(material, allowed))]


class HttpKeyFetcher:
    """Fetch a JWK or JWKS document over HTTP(S)."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def __call__(self, url: str) -> Mapping[str, Any]:
        logger.debug(f"Fetching remote key document from {url}")
        response = httpx.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()


class KeyProvider:
    """
    Resolves secrets into signing and verification keys.

    Secret descriptors are resolved on every call; nothing is cached.
    """

    def __init__(
        self,
        config: WardenConfig,
        fetcher: Optional[KeyFetcher] = None,
        metrics: Any = None,
    ):
        self.config = config
        self.fetcher = fetcher or HttpKeyFetcher(timeout=config.key_fetch_timeout)
        self.metrics = metrics

    def _resolve_materials(self, secret: Any) -> List[Any]:
        descriptor = self.config.secret_key if secret is None else secret
        elements = descriptor if isinstance(descriptor, (list, tuple)) else [descriptor]

        materials: List[Any] = []
        for element in elements:
            try:
                resolved = resolve(element)
            except Exception as e:
                raise KeyResolutionError(f"Secret resolver failed: {e}") from e
            if isinstance(resolved, (list, tuple)):
                materials.extend(resolved)
            else:
                materials.append(resolved)
        return materials

    def _candidates(self, materials: Iterable[Any], allowed: Sequence[str]) -> List[CandidateKey]:
        candidates: List[CandidateKey] = []
        for index, material in enumerate(materials):
            try:
                candidates.extend(normalize(material, allowed))
            except KeyResolutionError as e:
                logger.warning(f"Skipping secret candidate {index}: {e.error_description}")
        return candidates

    def candidate_keys(self, secret: Any = None, allowed: Optional[Sequence[str]] = None) -> List[CandidateKey]:
        """
        Resolve every verification candidate, in order.

        Private keys are reduced to their public halves.

        Args:
            secret: Secret descriptor overriding configuration
            allowed: Algorithm allow-list (defaults to configuration)

        Raises:
            KeyResolutionError: If no candidate can be resolved
        """
        allowed = list(allowed or self.config.allowed_algos)
        candidates = [
            CandidateKey(public_key_for(c.key), c.algorithms, c.kid)
            for c in self._candidates(self._resolve_materials(secret), allowed)
            if c.algorithms
        ]
        if not candidates:
            raise KeyResolutionError("No verification key could be resolved")
        logger.debug(f"Resolved {len(candidates)} verification candidate(s)")
        return candidates

    def signing_key(self, secret: Any = None, algorithm: Optional[str] = None) -> SigningKey:
        """
        Resolve the single key a token is signed with.

        The first element of a secret sequence is used.

        Args:
            secret: Secret descriptor overriding configuration
            algorithm: Requested algorithm (e.g. from an ``alg`` header)

        Raises:
            KeyResolutionError: If no usable signing key can be resolved
            UnsupportedAlgorithmError: If the algorithm is not allowed for the key
        """
        allowed = list(self.config.allowed_algos)
        if algorithm is not None and algorithm not in allowed:
            raise UnsupportedAlgorithmError(f"Algorithm {algorithm} is not allowed")

        materials = self._resolve_materials(secret)
        if not materials:
            raise KeyResolutionError("No signing key could be resolved")
        candidates = normalize(materials[0], allowed)
        if not candidates:
            raise KeyResolutionError("No signing key could be resolved")
        candidate = candidates[0]

        if key_family(candidate.key) != HMAC and not is_private(candidate.key):
            raise KeyResolutionError("Signing requires a private key")

        if algorithm is None:
            if not candidate.algorithms:
                raise UnsupportedAlgorithmError("No allowed algorithm matches the signing key")
            algorithm = candidate.algorithms[0]
        elif not candidate.allows(algorithm):
            raise UnsupportedAlgorithmError(f"Algorithm {algorithm} does not match the signing key")

        return SigningKey(candidate.key, algorithm, candidate.kid)

    def trusted_origins(self) -> List[str]:
        """Origins a ``jku`` header may point at."""
        if self.config.trusted_key_urls:
            return [url_origin(url) for url in self.config.trusted_key_urls]
        if self.config.issuer.startswith(("https://", "http://")):
            return [url_origin(self.config.issuer)]
        return []

    def is_trusted(self, url: str) -> bool:
        if not isinstance(url, str) or not url.startswith(("https://", "http://")):
            return False
        return url_origin(url) in self.trusted_origins()

    def remote_candidates(self, record: KeyUrlTrustRecord) -> List[CandidateKey]:
        """
        Fetch the remote key a token header points at.

        The origin is checked before any network call is made.

        Args:
            record: Locator taken from the token header

        Returns:
            Exactly one candidate restricted to the header algorithm

        Raises:
            UntrustedKeySourceError: If the URL's origin is not trusted
            InvalidTokenError: If the key cannot be fetched or parsed
        """
        if not self.is_trusted(record.url):
            logger.warning(f"Rejected key URL with untrusted origin {record.origin}")
            self._record_fetch("untrusted")
            raise UntrustedKeySourceError(f"Key URL origin {record.origin} is not trusted")

        try:
            document = self.fetcher(record.url)
        except Exception as e:
            logger.warning(f"Remote key fetch from {record.url} failed: {e}")
            self._record_fetch("error")
            raise InvalidTokenError("Remote key could not be fetched") from e

        try:
            jwk = self._select_jwk(document, record.kid)
            candidate = _from_jwk(jwk, list(self.config.allowed_algos))
        except (KeyResolutionError, TypeError, ValueError) as e:
            logger.warning(f"Remote key document from {record.url} is unusable: {e}")
            self._record_fetch("error")
            raise InvalidTokenError("Remote key document is unusable") from e

        if not record.algorithm or not candidate.allows(record.algorithm):
            self._record_fetch("error")
            raise InvalidTokenError("Remote key does not match the token algorithm")

        self._record_fetch("success")
        return [CandidateKey(public_key_for(candidate.key), (record.algorithm,), candidate.kid)]

    @staticmethod
    def _select_jwk(document: Any, kid: Optional[str]) -> Dict[str, Any]:
        if not isinstance(document, Mapping):
            raise ValueError("Key document is not a JSON object")

        if "keys" not in document:
            if kid is not None and document.get("kid") not in (None, kid):
                raise ValueError(f"Key document has no key {kid}")
            return dict(document)

        keys = [k for k in document["keys"] if isinstance(k, Mapping)]
        if kid is not None:
            keys = [k for k in keys if k.get("kid") == kid]
        if len(keys) != 1:
            raise ValueError(f"Expected exactly one matching key, found {len(keys)}")
        return dict(keys[0])

    def _record_fetch(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_key_fetch(outcome)
