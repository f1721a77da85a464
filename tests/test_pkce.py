# Tests for oauth/pkce.py

import base64
import hashlib
import re

from social_connect.oauth.pkce import (
    create_pkce_pair,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
    verify_code_challenge,
)

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestCodeVerifier:
    def test_length_and_alphabet(self):
        verifier = generate_code_verifier()
        # 32 random bytes, base64url without padding
        assert len(verifier) == 43
        assert URL_SAFE.match(verifier)

    def test_unique(self):
        assert len({generate_code_verifier() for _ in range(50)}) == 50


class TestCodeChallenge:
    def test_rfc7636_appendix_b(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_matches_sha256_base64url(self):
        verifier = generate_code_verifier()
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=").decode()
        assert generate_code_challenge(verifier) == expected
        assert "=" not in expected

    def test_verify_true(self):
        pair = create_pkce_pair()
        assert verify_code_challenge(pair.code_verifier, pair.code_challenge) is True

    def test_verify_false_for_other_verifier(self):
        pair = create_pkce_pair()
        assert verify_code_challenge(generate_code_verifier(), pair.code_challenge) is False

    def test_verify_false_for_garbage_challenge(self):
        assert verify_code_challenge("abc", "not-a-challenge-é") is False


class TestState:
    def test_state_is_url_safe_and_unique(self):
        states = {generate_state() for _ in range(50)}
        assert len(states) == 50
        assert all(URL_SAFE.match(s) for s in states)
