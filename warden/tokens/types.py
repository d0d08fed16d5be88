"""Token lifecycle datatypes."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from warden.exceptions import TokenError

Claims = Mapping[str, Any]


def freeze(claims: Mapping[str, Any]) -> Claims:
    """Return a read-only copy of a claims mapping."""
    return MappingProxyType(dict(claims))


def url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` of a URL, lower-cased."""
    parts = urlsplit(url)
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


@dataclass(frozen=True)
class CandidateKey:
    """A verification key and the algorithms it may be used with."""

    key: Any
    algorithms: Tuple[str, ...]
    kid: Optional[str] = None

    def allows(self, algorithm: str) -> bool:
        return algorithm in self.algorithms


@dataclass(frozen=True)
class SigningKey:
    """The single key and algorithm a token is signed with."""

    key: Any
    algorithm: str
    kid: Optional[str] = None


@dataclass(frozen=True)
class KeyUrlTrustRecord:
    """Remote key locator taken from a token header while it is decoded."""

    algorithm: Optional[str]
    kid: Optional[str]
    url: str

    @property
    def origin(self) -> str:
        return url_origin(self.url)


@dataclass(frozen=True)
class TokenResult:
    """Outcome of a lifecycle operation."""

    ok: bool
    token: Optional[str] = None
    claims: Optional[Claims] = None
    error: Any = None
    exception: Optional[TokenError] = field(default=None, repr=False, compare=False)

    @classmethod
    def success(cls, token: Optional[str] = None, claims: Optional[Claims] = None) -> "TokenResult":
        return cls(ok=True, token=token, claims=claims)

    @classmethod
    def failure(cls, exc: TokenError) -> "TokenResult":
        return cls(ok=False, error=exc.error, exception=exc)

    def unwrap(self) -> "TokenResult":
        """Return self on success, raise the underlying TokenError otherwise."""
        if not self.ok:
            raise self.exception or TokenError(self.error)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok}
        if self.token is not None:
            data["token"] = self.token
        if self.claims is not None:
            data["claims"] = dict(self.claims)
        if self.error is not None:
            data["error"] = self.error
        return data
