"""Token lifecycle: claims, keys, codec, verification and the engine."""

from .codec import JWTCodec, TokenCodec
from .engine import Warden
from .hooks import Hooks
from .keys import HttpKeyFetcher, KeyProvider
from .metrics import TokenMetrics
from .serializer import PermissionsEncoder, ResourceSerializer, StringSerializer
from .types import TokenResult

__all__ = [
    "JWTCodec",
    "TokenCodec",
    "Warden",
    "Hooks",
    "HttpKeyFetcher",
    "KeyProvider",
    "TokenMetrics",
    "PermissionsEncoder",
    "ResourceSerializer",
    "StringSerializer",
    "TokenResult",
]
