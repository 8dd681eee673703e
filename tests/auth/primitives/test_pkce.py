import base64
import hashlib

import pytest

from oidcflow.auth.models.security import PKCEParameters
from oidcflow.auth.primitives.pkce import PKCEManager


class TestPKCEManager:
    def test_generate_parameters_crypto_requirements(self) -> None:
        # Arrange
        pkce_manager = PKCEManager()

        # Act
        params = pkce_manager.generate_parameters()

        # Assert RFC 7636 requirements
        assert 43 <= len(params.code_verifier) <= 128
        assert 43 <= len(params.code_challenge) <= 128
        assert params.code_challenge_method == "S256"

        # Verify code_challenge is base64url(sha256(code_verifier))
        expected_challenge = (
            base64.urlsafe_b64encode(
                hashlib.sha256(params.code_verifier.encode("ascii")).digest()
            )
            .decode("ascii")
            .rstrip("=")
        )
        assert params.code_challenge == expected_challenge

    def test_generate_parameters_uniqueness(self) -> None:
        # Arrange
        pkce_manager = PKCEManager()

        # Act - Generate multiple parameters
        params1 = pkce_manager.generate_parameters()
        params2 = pkce_manager.generate_parameters()

        # Assert - Each generation is unique
        assert params1.code_verifier != params2.code_verifier
        assert params1.code_challenge != params2.code_challenge

    def test_rfc7636_appendix_b_vector(self) -> None:
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        assert (
            PKCEManager.code_challenge_for(verifier)
            == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        )

    def test_custom_verifier_length(self) -> None:
        params = PKCEManager(verifier_length=43).generate_parameters()

        assert len(params.code_verifier) == 43

    def test_invalid_verifier_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            PKCEManager(verifier_length=20)

    def test_parameters_only_allow_s256(self) -> None:
        with pytest.raises(ValueError):
            PKCEParameters(
                code_verifier="a" * 43, code_challenge="b" * 43, code_challenge_method="plain"
            )
