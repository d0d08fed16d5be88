"""
Lifecycle hooks.

Subclass ``Hooks`` and override the callbacks you need. A callback vetoes
the current step by raising a TokenError, usually ``HookRejected``.
"""

from typing import Any, Sequence, Tuple

from warden.tokens.types import Claims

TokenPair = Tuple[str, Claims]


class Hooks:
    """Pass-through lifecycle callbacks."""

    def before_encode_and_sign(self, resource: Any, token_type: str, claims: Claims) -> Tuple[Any, str, Claims]:
        """Inspect, replace or veto what is about to be signed."""
        return resource, token_type, claims

    def after_encode_and_sign(self, resource: Any, token_type: str, claims: Claims, token: str) -> None:
        """Observe a minted token. Errors are logged and ignored."""

    def on_verify(self, claims: Claims, token: str) -> Tuple[Claims, str]:
        """Last say on a verified token, e.g. a revocation lookup."""
        return claims, token

    def on_refresh(self, old: TokenPair, new: TokenPair) -> None:
        """Observe a refresh. Errors are logged and ignored."""

    def on_exchange(self, claims: Claims, from_types: Sequence[str], to_type: str) -> Claims:
        """Transform or veto the claims carried into an exchanged token."""
        return claims

    def on_revoke(self, claims: Claims, token: str) -> None:
        """Mark a token revoked in an external store."""
