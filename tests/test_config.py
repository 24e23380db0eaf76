"""
Configuration Tests
===================
"""

import pytest

from vcproofs.blind import request_blind_sign, verify_blind_sign_request
from vcproofs.config import ProofConfig
from vcproofs.errors import EncodingError
from vcproofs.signing import sign


class TestProofConfig:

    def test_defaults(self):
        config = ProofConfig()
        assert config.require_blind_sign_pok is True
        assert config.default_range_bits == 64
        assert config.max_statements == 4096
        assert config.modulus_bits == 2048

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("VCPROOFS_REQUIRE_BLIND_SIGN_POK", "false")
        monkeypatch.setenv("VCPROOFS_RANGE_BITS", "32")
        monkeypatch.setenv("VCPROOFS_MAX_STATEMENTS", "10")
        monkeypatch.setenv("VCPROOFS_MODULUS_BITS", "1024")
        config = ProofConfig.from_env()
        assert config.require_blind_sign_pok is False
        assert config.default_range_bits == 32
        assert config.max_statements == 10
        assert config.modulus_bits == 1024

    def test_unparseable_env_falls_back(self, monkeypatch):
        monkeypatch.setenv("VCPROOFS_RANGE_BITS", "wide")
        monkeypatch.delenv("VCPROOFS_MAX_STATEMENTS", raising=False)
        config = ProofConfig.from_env()
        assert config.default_range_bits == 64
        assert config.max_statements == 4096

    @pytest.mark.parametrize("kwargs", [
        {"default_range_bits": 0},
        {"default_range_bits": 253},
        {"max_statements": 0},
        {"modulus_bits": 256},
        {"modulus_bits": 1025},
    ])
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            ProofConfig(**kwargs)

    def test_frozen(self):
        with pytest.raises(AttributeError):
            ProofConfig().max_statements = 1


class TestConfigIsConsulted:

    def test_statement_limit(self, document, proof_options, key_graph):
        with pytest.raises(EncodingError, match="limit"):
            sign(document, proof_options, key_graph,
                 config=ProofConfig(max_statements=2))

    def test_blind_sign_policy(self, keypair, rng):
        request, _ = request_blind_sign(
            b"secret", keypair.public_key, skip_pok=True, rng=rng,
        )
        strict = verify_blind_sign_request(
            request.commitment, None, config=ProofConfig(),
        )
        lenient = verify_blind_sign_request(
            request.commitment, None,
            config=ProofConfig(require_blind_sign_pok=False),
        )
        assert not strict.verified
        assert lenient.verified

    def test_modulus_size(self, keypair):
        from vcproofs.clsig import CLPublicKey

        assert CLPublicKey.decode(keypair.public_key).modulus_bits == 512
