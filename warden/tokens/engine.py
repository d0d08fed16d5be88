"""
Token lifecycle engine.

``Warden`` mints, verifies, refreshes, exchanges and revokes tokens. Every
public operation returns a ``TokenResult``; the ``*_or_raise`` variants
raise the underlying ``TokenError`` instead.

Author: Warden Team
Date: 2026-10-16
"""

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from warden.core.config_manager import ConfigManager, WardenConfig
from warden.core.logging_config import operation as log_operation, setup_logging_from_config
from warden.core.resolver import import_function
from warden.exceptions import (
    ConfigurationError,
    IncorrectTokenTypeError,
    SerializerError,
    TokenError,
)
from warden.tokens.claims import (
    REGENERATED_CLAIMS,
    ClaimsBuilder,
    check_lifetime,
    split_options,
    stringify_keys,
    timestamp,
)
from warden.tokens.codec import JWTCodec, TokenCodec
from warden.tokens.hooks import Hooks
from warden.tokens.keys import KeyFetcher, KeyProvider
from warden.tokens.metrics import TokenMetrics, outcome_label
from warden.tokens.serializer import PermissionsEncoder, ResourceSerializer
from warden.tokens.types import Claims, KeyUrlTrustRecord, CandidateKey, TokenResult, freeze
from warden.tokens.verifier import ClaimVerifier

logger = logging.getLogger(__name__)


def _without_regenerated(claims: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in claims.items() if k not in REGENERATED_CLAIMS}


def _instantiate(path: str, what: str) -> Any:
    factory = import_function(path)
    try:
        return factory()
    except TypeError as e:
        raise ConfigurationError(f"Cannot create {what} from {path!r}: {e}") from e


class Warden:
    """
    Token lifecycle engine.

    One instance holds the configuration, the resource serializer, the hooks
    and the codec chosen at construction. Secrets and TTLs are resolved on
    every call, so an instance can be shared between threads.

    Example:
        warden = Warden(
            {"issuer": "my_app", "secret_key": {"env": "APP_SECRET"}},
            serializer=UserSerializer(),
        )
        result = warden.encode_and_sign(user, "access", {"role": "admin"})
        claims = warden.decode_and_verify_or_raise(result.token)
    """

    def __init__(
        self,
        config: Union[WardenConfig, Mapping[str, Any]],
        serializer: Optional[ResourceSerializer] = None,
        hooks: Optional[Hooks] = None,
        codec: Optional[TokenCodec] = None,
        key_fetcher: Optional[KeyFetcher] = None,
        permissions_encoder: Optional[PermissionsEncoder] = None,
        metrics: Optional[TokenMetrics] = None,
        clock: Callable[[], int] = timestamp,
    ):
        """
        Initialize the engine.

        Args:
            config: WardenConfig or a mapping validated into one
            serializer: Resource serializer (falls back to ``config.serializer``)
            hooks: Lifecycle hooks (falls back to ``config.hooks``, then pass-through)
            codec: Token codec (JWTCodec by default)
            key_fetcher: Callable fetching remote key documents by URL
            permissions_encoder: Folds ``perms`` into claims
            metrics: Metrics collector (a private one by default)
            clock: Source of the current time in integer seconds

        Raises:
            ValidationError: If the configuration mapping is invalid
            ConfigurationError: If no serializer is available
        """
        if not isinstance(config, WardenConfig):
            config = WardenConfig(**dict(config))
        self.config = config

        if serializer is None and config.serializer:
            serializer = _instantiate(config.serializer, "serializer")
        if serializer is None:
            raise ConfigurationError("A resource serializer is required")
        self.serializer = serializer

        if hooks is None:
            hooks = _instantiate(config.hooks, "hooks") if config.hooks else Hooks()
        self.hooks = hooks

        self.codec = codec or JWTCodec()
        self.metrics = metrics or TokenMetrics()
        self.keys = KeyProvider(config, fetcher=key_fetcher, metrics=self.metrics)
        self.builder = ClaimsBuilder(config, serializer, permissions_encoder, clock)
        self.verifier = ClaimVerifier(config, clock)

        logger.info(
            f"Warden ready: issuer={config.issuer}, algorithms={','.join(config.allowed_algos)}, "
            f"codec={type(self.codec).__name__}, hooks={type(self.hooks).__name__}"
        )

    @classmethod
    def from_config_file(cls, config_file: str, configure_logging: bool = False, **kwargs: Any) -> "Warden":
        """Build an engine from a YAML/JSON file plus WARDEN_* environment variables.

        With ``configure_logging`` the file's logging section is applied too.
        """
        config = ConfigManager().load(config_file=config_file)
        if configure_logging:
            setup_logging_from_config(config.logging)
        return cls(config, **kwargs)

    # Public operations

    def encode_and_sign(
        self,
        resource: Any,
        token_type: Optional[str] = None,
        claims: Optional[Mapping[Any, Any]] = None,
        *,
        ttl: Any = None,
        secret: Any = None,
        headers: Optional[Mapping[str, Any]] = None,
    ) -> TokenResult:
        """
        Mint a token for a resource.

        ``claims`` may carry the ``ttl``, ``secret`` and ``headers`` options;
        keyword arguments win over them.

        Returns:
            TokenResult with ``token`` and ``claims`` on success
        """
        return self._run(
            "encode_and_sign", self._encode_and_sign,
            resource, token_type, claims, ttl=ttl, secret=secret, headers=headers,
        )

    def encode_and_sign_or_raise(self, resource: Any, token_type: Optional[str] = None,
                                 claims: Optional[Mapping[Any, Any]] = None, **kwargs: Any) -> Tuple[str, Claims]:
        result = self.encode_and_sign(resource, token_type, claims, **kwargs).unwrap()
        return result.token, result.claims

    def decode_and_verify(
        self,
        token: str,
        expected_claims: Optional[Mapping[Any, Any]] = None,
        *,
        secret: Any = None,
    ) -> TokenResult:
        """
        Verify a token's signature and claims.

        Args:
            token: Wire token
            expected_claims: Literal claims the token must carry; may hold a
                ``secret`` option
            secret: Secret descriptor overriding configuration

        Returns:
            TokenResult with ``claims`` on success
        """
        return self._run("decode_and_verify", self._verified_result, token, expected_claims, secret=secret)

    def decode_and_verify_or_raise(
        self,
        token: str,
        expected_claims: Optional[Mapping[Any, Any]] = None,
        *,
        secret: Any = None,
    ) -> Claims:
        """Return verified claims or raise the TokenError."""
        return self.decode_and_verify(token, expected_claims, secret=secret).unwrap().claims

    def refresh(
        self,
        token: str,
        claims: Optional[Mapping[Any, Any]] = None,
        *,
        ttl: Any = None,
        secret: Any = None,
    ) -> TokenResult:
        """
        Replace a token with a new one of the same type.

        jti, iat, exp and nbf are always regenerated, even when ``claims``
        names them; other claims carry over and ``claims`` overrides them. The original is revoked on a best-effort
        basis. Nothing is minted unless the original verifies.

        Returns:
            TokenResult with the new token and claims
        """
        return self._run("refresh", self._refresh, token, claims, ttl=ttl, secret=secret)

    def refresh_or_raise(self, token: str, claims: Optional[Mapping[Any, Any]] = None,
                         **kwargs: Any) -> Tuple[str, Claims]:
        result = self.refresh(token, claims, **kwargs).unwrap()
        return result.token, result.claims

    def exchange(
        self,
        token: str,
        from_types: Union[str, Sequence[str]],
        to_type: str,
        *,
        ttl: Any = None,
        secret: Any = None,
    ) -> TokenResult:
        """
        Trade a token of one type for a new token of another.

        Args:
            token: Wire token to exchange
            from_types: Type or types the token may have
            to_type: Type of the new token
            ttl: TTL descriptor for the new token
            secret: Secret descriptor overriding configuration

        Returns:
            TokenResult with the new token and claims; ``incorrect_token_type``
            when the token's type is not in ``from_types``
        """
        return self._run("exchange", self._exchange, token, from_types, to_type, ttl=ttl, secret=secret)

    def exchange_or_raise(self, token: str, from_types: Union[str, Sequence[str]], to_type: str,
                          **kwargs: Any) -> Tuple[str, Claims]:
        result = self.exchange(token, from_types, to_type, **kwargs).unwrap()
        return result.token, result.claims

    def revoke(self, token: str, claims: Optional[Mapping[str, Any]] = None) -> TokenResult:
        """
        Revoke a token through the ``on_revoke`` hook.

        Without ``claims`` the token is verified first; a token that no
        longer verifies needs no revoking and succeeds without the hook.
        """
        return self._run("revoke", self._revoke, token, claims)

    def peek_header(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the token header without verifying anything, or None."""
        try:
            header, _ = self.codec.decode_unverified(token)
        except TokenError:
            return None
        return header

    def peek_claims(self, token: str) -> Optional[Claims]:
        """Return the token claims without verifying anything, or None."""
        try:
            _, claims = self.codec.decode_unverified(token)
        except TokenError:
            return None
        return claims

    def resource_from_claims(self, claims: Mapping[str, Any]) -> Any:
        """
        Load the resource a claim set's subject identifies.

        Raises:
            SerializerError: If there is no subject or the serializer fails
        """
        subject = claims.get("sub")
        if not subject:
            raise SerializerError("missing_subject", "Claims carry no sub")
        return self.serializer.from_token(subject)

    # Steps

    def _run(self, name: str, step: Callable[..., TokenResult], *args: Any, **kwargs: Any) -> TokenResult:
        started = time.perf_counter()
        with log_operation(name):
            try:
                result = step(*args, **kwargs)
            except TokenError as e:
                logger.warning(f"{name} failed: {e.error}")
                result = TokenResult.failure(e)
            else:
                jti = result.claims.get("jti") if result.claims else None
                logger.debug(f"{name} succeeded (jti={jti})")
        outcome = "ok" if result.ok else outcome_label(result.error)
        self.metrics.track_operation(name, outcome, time.perf_counter() - started)
        return result

    def _encode_and_sign(
        self,
        resource: Any,
        token_type: Optional[str],
        claims: Optional[Mapping[Any, Any]],
        ttl: Any = None,
        secret: Any = None,
        headers: Optional[Mapping[str, Any]] = None,
    ) -> TokenResult:
        claims, options = split_options(claims)
        ttl = ttl if ttl is not None else options.get("ttl")
        secret = secret if secret is not None else options.get("secret")
        headers = stringify_keys(headers if headers is not None else options.get("headers"))

        built = self.builder.build(resource, token_type, claims, ttl=ttl)
        resource, token_type, built = self.hooks.before_encode_and_sign(resource, built["typ"], built)
        check_lifetime(built)
        built = freeze(built)

        signing = self.keys.signing_key(secret, headers.get("alg"))
        if signing.kid and "kid" not in headers:
            headers["kid"] = signing.kid
        token = self.codec.encode(built, signing.key, signing.algorithm, headers)

        self._observe("after_encode_and_sign", self.hooks.after_encode_and_sign, resource, token_type, built, token)
        return TokenResult.success(token, built)

    def _verified_result(self, token: str, expected_claims: Optional[Mapping[Any, Any]] = None,
                         secret: Any = None) -> TokenResult:
        return TokenResult.success(token, self._decode_and_verify(token, expected_claims, secret))

    def _decode_and_verify(self, token: str, expected_claims: Optional[Mapping[Any, Any]] = None,
                           secret: Any = None) -> Claims:
        expected = stringify_keys(expected_claims)
        if secret is None:
            secret = expected.get("secret")

        candidates = self._verification_candidates(token, secret)
        claims = self.codec.decode_and_verify_signature(token, candidates, self.config.allowed_algos)
        claims = self.verifier.verify(claims, expected)
        claims, _ = self.hooks.on_verify(claims, token)
        return freeze(claims)

    def _verification_candidates(self, token: str, secret: Any) -> Sequence[CandidateKey]:
        header, _ = self.codec.decode_unverified(token)
        if "jku" in header:
            record = KeyUrlTrustRecord(header.get("alg"), header.get("kid"), str(header["jku"]))
            return self.keys.remote_candidates(record)
        return self.keys.candidate_keys(secret)

    def _refresh(self, token: str, claims: Optional[Mapping[Any, Any]] = None,
                 ttl: Any = None, secret: Any = None) -> TokenResult:
        overrides, options = split_options(claims)
        ttl = ttl if ttl is not None else options.get("ttl")
        secret = secret if secret is not None else options.get("secret")

        old_claims = self._decode_and_verify(token, secret=secret)
        resource = self.resource_from_claims(old_claims)

        carried = _without_regenerated({**old_claims, **overrides})
        minted = self._encode_and_sign(resource, old_claims.get("typ"), carried, ttl=ttl, secret=secret)

        self._observe("on_refresh", self.hooks.on_refresh, (token, old_claims), (minted.token, minted.claims))
        self._revoke_quietly(token, old_claims)
        return minted

    def _exchange(self, token: str, from_types: Union[str, Sequence[str]], to_type: str,
                  ttl: Any = None, secret: Any = None) -> TokenResult:
        allowed = (from_types,) if isinstance(from_types, str) else tuple(from_types)

        old_claims = self._decode_and_verify(token, secret=secret)
        if old_claims.get("typ") not in allowed:
            raise IncorrectTokenTypeError(
                f"Token type {old_claims.get('typ')!r} is not one of {', '.join(map(str, allowed))}"
            )

        carried = freeze(_without_regenerated(old_claims))
        carried = _without_regenerated(stringify_keys(self.hooks.on_exchange(carried, allowed, to_type)))
        carried["typ"] = to_type

        resource = self.resource_from_claims(old_claims)
        minted = self._encode_and_sign(resource, to_type, carried, ttl=ttl, secret=secret)

        self._revoke_quietly(token, old_claims)
        return minted

    def _revoke(self, token: str, claims: Optional[Mapping[str, Any]] = None) -> TokenResult:
        if claims is None:
            try:
                claims = self._decode_and_verify(token)
            except TokenError as e:
                logger.info(f"Token no longer verifies ({e.error}), nothing to revoke")
                return TokenResult.success(token)

        claims = freeze(claims)
        self.hooks.on_revoke(claims, token)
        return TokenResult.success(token, claims)

    def _revoke_quietly(self, token: str, claims: Claims) -> None:
        self._observe("on_revoke", self.hooks.on_revoke, claims, token)

    @staticmethod
    def _observe(name: str, hook: Callable[..., Any], *args: Any) -> None:
        try:
            hook(*args)
        except Exception as e:
            logger.warning(f"{name} hook failed and was ignored: {e}")
