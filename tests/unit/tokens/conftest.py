"""
Shared fixtures for token lifecycle tests.
"""

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from warden.core.config_manager import WardenConfig
from warden.tokens.engine import Warden
from warden.tokens.hooks import Hooks
from warden.tokens.metrics import TokenMetrics
from warden.tokens.serializer import StringSerializer

SECRET_A = "A" * 64
SECRET_B = "B" * 64
NOW = 1_700_000_000


class FakeClock:
    """Clock returning a settable time."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class RecordingHooks(Hooks):
    """Hooks that remember every call."""

    def __init__(self):
        self.calls = []

    def after_encode_and_sign(self, resource, token_type, claims, token):
        self.calls.append(("after_encode_and_sign", claims["jti"]))

    def on_refresh(self, old, new):
        self.calls.append(("on_refresh", old[1]["jti"], new[1]["jti"]))

    def on_revoke(self, claims, token):
        self.calls.append(("on_revoke", claims["jti"]))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return WardenConfig(issuer="my_app", secret_key=SECRET_A)


@pytest.fixture
def hooks():
    return RecordingHooks()


@pytest.fixture
def metrics():
    return TokenMetrics()


@pytest.fixture
def warden(config, hooks, clock, metrics):
    return Warden(config, serializer=StringSerializer(), hooks=hooks, clock=clock, metrics=metrics)


@pytest.fixture
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())
