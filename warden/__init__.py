"""
Warden: pluggable token authentication core

Mints, verifies, refreshes, exchanges and revokes signed tokens while the
application supplies claim policy, secrets and hooks.
"""

__version__ = "0.1.0"
__author__ = "Warden Team"

from .exceptions import ConfigurationError, HookRejected, SerializerError, TokenError
from .tokens.engine import Warden
from .tokens.hooks import Hooks
from .tokens.serializer import ResourceSerializer, StringSerializer
from .tokens.types import TokenResult

__all__ = [
    "Warden",
    "Hooks",
    "ResourceSerializer",
    "StringSerializer",
    "TokenResult",
    "TokenError",
    "HookRejected",
    "SerializerError",
    "ConfigurationError",
    "__version__",
]
