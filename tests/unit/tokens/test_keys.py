"""
Tests for key material resolution and the remote key path.
"""

from unittest.mock import Mock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jwt import PyJWK
from jwt.algorithms import ECAlgorithm, HMACAlgorithm

from warden.core.config_manager import WardenConfig
from warden.core.resolver import EnvRef, FunctionRef
from warden.exceptions import (
    InvalidTokenError,
    KeyResolutionError,
    UnsupportedAlgorithmError,
    UntrustedKeySourceError,
)
from warden.tokens.keys import HttpKeyFetcher, KeyProvider, algorithm_family, normalize
from warden.tokens.types import KeyUrlTrustRecord

SECRET_A = "A" * 64
SECRET_B = "B" * 64
ALL_ALGOS = ["HS256", "HS512", "RS256", "ES256", "EdDSA"]


def _provider(fetcher=None, **overrides):
    settings = {"issuer": "https://auth.example.com", "secret_key": SECRET_A, "allowed_algos": ALL_ALGOS}
    settings.update(overrides)
    return KeyProvider(WardenConfig(**settings), fetcher=fetcher)


class TestNormalize:
    """Test suite for key normalization."""

    def test_algorithm_family(self):
        """Test algorithms map to their key families."""
        assert algorithm_family("HS512") == "HMAC"
        assert algorithm_family("PS256") == "RSA"
        assert algorithm_family("ES384") == "EC"
        assert algorithm_family("EdDSA") == "OKP"
        assert algorithm_family("XX1") is None

    def test_string_secret(self):
        """Test a string secret is an HMAC key."""
        [candidate] = normalize(SECRET_A, ALL_ALGOS)

        assert candidate.key == SECRET_A
        assert candidate.algorithms == ("HS256", "HS512")

    def test_pem_private_key(self):
        """Test PEM strings are loaded with cryptography."""
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode()

        [candidate] = normalize(pem, ALL_ALGOS)

        assert isinstance(candidate.key, rsa.RSAPrivateKey)
        assert candidate.algorithms == ("RS256",)

    def test_jwk_mapping(self):
        """Test a JWK mapping becomes its key, narrowed by alg."""
        jwk = HMACAlgorithm.to_jwk(SECRET_A, as_dict=True)
        jwk.update({"alg": "HS512", "kid": "k1"})

        [candidate] = normalize(jwk, ALL_ALGOS)

        assert candidate.key == SECRET_A.encode()
        assert candidate.algorithms == ("HS512",)
        assert candidate.kid == "k1"

    def test_jwks_mapping(self, ec_key):
        """Test every key of a JWKS becomes a candidate."""
        jwks = {"keys": [
            HMACAlgorithm.to_jwk(SECRET_A, as_dict=True),
            ECAlgorithm.to_jwk(ec_key.public_key(), as_dict=True),
        ]}

        candidates = normalize(jwks, ALL_ALGOS)

        assert len(candidates) == 2
        assert candidates[1].algorithms == ("ES256",)

    def test_pyjwk(self, ec_key):
        """Test PyJWK instances are unwrapped."""
        jwk = PyJWK(ECAlgorithm.to_jwk(ec_key.public_key(), as_dict=True))

        [candidate] = normalize(jwk, ALL_ALGOS)

        assert isinstance(candidate.key, ec.EllipticCurvePublicKey)

    @pytest.mark.parametrize("material", [None, "", b"", 12345, {"kty": "nope"}])
    def test_unusable_material(self, material):
        """Test unusable material raises key_resolution_failed."""
        with pytest.raises(KeyResolutionError) as exc_info:
            normalize(material, ALL_ALGOS)
        assert exc_info.value.error == "key_resolution_failed"


class TestCandidateKeys:
    """Test suite for verification candidates."""

    def test_configured_secret(self):
        """Test the configured secret is the default candidate."""
        [candidate] = _provider().candidate_keys()

        assert candidate.key == SECRET_A

    def test_secret_list_in_order(self):
        """Test every element of a list becomes a candidate in order."""
        candidates = _provider(secret_key=[SECRET_B, SECRET_A]).candidate_keys()

        assert [c.key for c in candidates] == [SECRET_B, SECRET_A]

    def test_descriptors_resolved_per_call(self, monkeypatch):
        """Test environment descriptors pick up rotated values."""
        provider = _provider(secret_key=EnvRef("WARDEN_TEST_SECRET"))

        monkeypatch.setenv("WARDEN_TEST_SECRET", SECRET_A)
        assert provider.candidate_keys()[0].key == SECRET_A

        monkeypatch.setenv("WARDEN_TEST_SECRET", SECRET_B)
        assert provider.candidate_keys()[0].key == SECRET_B

    def test_function_returning_list(self):
        """Test a resolver function may return several keys."""
        provider = _provider(secret_key=FunctionRef(lambda: [SECRET_A, SECRET_B]))

        assert len(provider.candidate_keys()) == 2

    def test_bad_elements_skipped(self):
        """Test unusable elements are skipped when others resolve."""
        candidates = _provider(secret_key=[EnvRef("WARDEN_TEST_UNSET_VAR"), SECRET_A]).candidate_keys()

        assert [c.key for c in candidates] == [SECRET_A]

    def test_private_keys_reduced_to_public(self, ec_key):
        """Test verification candidates never carry private keys."""
        [candidate] = _provider().candidate_keys(secret=ec_key)

        assert isinstance(candidate.key, ec.EllipticCurvePublicKey)

    def test_nothing_resolvable(self):
        """Test no usable candidate raises key_resolution_failed."""
        with pytest.raises(KeyResolutionError):
            _provider(secret_key=EnvRef("WARDEN_TEST_UNSET_VAR")).candidate_keys()

    def test_resolver_exception(self):
        """Test a failing resolver function raises key_resolution_failed."""
        def broken():
            raise RuntimeError("vault down")

        with pytest.raises(KeyResolutionError):
            _provider(secret_key=FunctionRef(broken)).candidate_keys()

    def test_family_outside_allow_list(self, ec_key):
        """Test keys whose family is not allowed are not candidates."""
        with pytest.raises(KeyResolutionError):
            _provider(allowed_algos=["HS512"]).candidate_keys(secret=ec_key)


class TestSigningKey:
    """Test suite for signing key selection."""

    def test_first_allowed_algorithm(self):
        """Test the first allowed algorithm of the key family is used."""
        signing = _provider(allowed_algos=["HS512", "HS256"]).signing_key()

        assert signing.key == SECRET_A
        assert signing.algorithm == "HS512"

    def test_first_element_of_list(self):
        """Test only the first element of a secret list signs."""
        signing = _provider(secret_key=[SECRET_B, SECRET_A]).signing_key()

        assert signing.key == SECRET_B

    def test_requested_algorithm(self, ec_key):
        """Test a requested algorithm is honoured when it fits the key."""
        signing = _provider().signing_key(secret=ec_key, algorithm="ES256")

        assert signing.algorithm == "ES256"
        assert signing.key is ec_key

    def test_algorithm_not_allowed(self):
        """Test algorithms outside the allow-list are rejected."""
        with pytest.raises(UnsupportedAlgorithmError):
            _provider(allowed_algos=["HS512"]).signing_key(algorithm="HS256")

    def test_algorithm_wrong_family(self):
        """Test an allowed algorithm that does not fit the key is rejected."""
        with pytest.raises(UnsupportedAlgorithmError):
            _provider().signing_key(algorithm="ES256")

    def test_public_key_cannot_sign(self, ec_key):
        """Test a public key is refused for signing."""
        with pytest.raises(KeyResolutionError):
            _provider().signing_key(secret=ec_key.public_key())


class TestRemoteKeys:
    """Test suite for the trust-gated remote key path."""

    def test_issuer_origin_trusted_by_default(self):
        """Test a URL-shaped issuer is the default trusted origin."""
        provider = _provider()

        assert provider.is_trusted("https://auth.example.com/.well-known/jwks.json")
        assert not provider.is_trusted("https://evil.example.com/jwks.json")
        assert not provider.is_trusted("https://auth.example.com:8443/jwks.json")

    def test_plain_issuer_trusts_nothing(self):
        """Test a non-URL issuer trusts no origin by default."""
        assert not _provider(issuer="my_app").is_trusted("https://auth.example.com/jwks.json")

    def test_explicit_trusted_urls(self):
        """Test configured trusted URLs replace the issuer default."""
        provider = _provider(trusted_key_urls=["https://keys.example.org/a/b"])

        assert provider.is_trusted("https://keys.example.org/other")
        assert not provider.is_trusted("https://auth.example.com/jwks.json")

    def test_untrusted_url_is_never_fetched(self):
        """Test an untrusted origin fails before any network call."""
        fetcher = Mock()
        record = KeyUrlTrustRecord("ES256", "k1", "https://evil.example.com/jwks.json")

        with pytest.raises(UntrustedKeySourceError) as exc_info:
            _provider(fetcher=fetcher).remote_candidates(record)

        assert exc_info.value.error == "untrusted_key_source"
        assert fetcher.call_count == 0

    def test_jwks_selected_by_kid(self, ec_key):
        """Test the key with the header kid is chosen from a JWKS."""
        other = ec.generate_private_key(ec.SECP256R1())
        jwks = {"keys": [
            {**ECAlgorithm.to_jwk(other.public_key(), as_dict=True), "kid": "old"},
            {**ECAlgorithm.to_jwk(ec_key.public_key(), as_dict=True), "kid": "k1"},
        ]}
        fetcher = Mock(return_value=jwks)
        record = KeyUrlTrustRecord("ES256", "k1", "https://auth.example.com/jwks.json")

        [candidate] = _provider(fetcher=fetcher).remote_candidates(record)

        fetcher.assert_called_once_with("https://auth.example.com/jwks.json")
        assert candidate.algorithms == ("ES256",)
        assert candidate.kid == "k1"
        assert candidate.key.public_numbers() == ec_key.public_key().public_numbers()

    def test_fetch_error_is_invalid_token(self):
        """Test a failing fetch becomes invalid_token."""
        fetcher = Mock(side_effect=ConnectionError("unreachable"))
        record = KeyUrlTrustRecord("ES256", None, "https://auth.example.com/jwks.json")

        with pytest.raises(InvalidTokenError):
            _provider(fetcher=fetcher).remote_candidates(record)

    def test_missing_kid_is_invalid_token(self, ec_key):
        """Test a JWKS without the requested kid becomes invalid_token."""
        jwks = {"keys": [{**ECAlgorithm.to_jwk(ec_key.public_key(), as_dict=True), "kid": "k1"}]}
        record = KeyUrlTrustRecord("ES256", "k2", "https://auth.example.com/jwks.json")

        with pytest.raises(InvalidTokenError):
            _provider(fetcher=Mock(return_value=jwks)).remote_candidates(record)

    def test_algorithm_mismatch_is_invalid_token(self, ec_key):
        """Test a remote key that does not fit the header algorithm is rejected."""
        jwk = ECAlgorithm.to_jwk(ec_key.public_key(), as_dict=True)
        record = KeyUrlTrustRecord("HS256", None, "https://auth.example.com/jwk.json")

        with pytest.raises(InvalidTokenError):
            _provider(fetcher=Mock(return_value=jwk)).remote_candidates(record)

    def test_metrics_recorded(self):
        """Test fetch outcomes are counted."""
        metrics = Mock()
        provider = KeyProvider(
            WardenConfig(issuer="https://auth.example.com", secret_key=SECRET_A),
            fetcher=Mock(), metrics=metrics,
        )

        with pytest.raises(UntrustedKeySourceError):
            provider.remote_candidates(KeyUrlTrustRecord("HS512", None, "https://evil.example.com/k"))

        metrics.record_key_fetch.assert_called_once_with("untrusted")


class TestHttpKeyFetcher:
    """Test suite for the httpx fetcher."""

    def test_fetch_uses_timeout(self, monkeypatch):
        """Test the document is fetched with the configured timeout."""
        response = Mock()
        response.json.return_value = {"keys": []}
        get = Mock(return_value=response)
        monkeypatch.setattr("warden.tokens.keys.httpx.get", get)

        document = HttpKeyFetcher(timeout=2.5)("https://auth.example.com/jwks.json")

        get.assert_called_once_with("https://auth.example.com/jwks.json", timeout=2.5)
        response.raise_for_status.assert_called_once()
        assert document == {"keys": []}
