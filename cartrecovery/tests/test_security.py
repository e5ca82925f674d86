"""Unit tests for session verification and stored-token decryption.

WHAT: verify_session_token and TokenCipher
WHY: The tenant id comes from the session JWT, and Meta tokens are only ever
     read back through the cipher
REFERENCES:
    - cartrecovery/security.py (module under test)
"""

import os
from datetime import timedelta

import pytest
from cryptography.fernet import Fernet

from cartrecovery.security import InvalidSessionError, TokenCipher, verify_session_token
from cartrecovery.tests.conftest import TEST_USER_ID


class TestVerifySessionToken:

    def test_returns_subject(self, make_session_token):
        token = make_session_token()

        assert verify_session_token(token, os.environ["JWT_SECRET"]) == TEST_USER_ID

    def test_expired(self, make_session_token):
        token = make_session_token(expires_in=timedelta(minutes=-5))

        with pytest.raises(InvalidSessionError, match="Invalid token"):
            verify_session_token(token, os.environ["JWT_SECRET"])

    def test_wrong_secret(self, make_session_token):
        token = make_session_token(secret="someone-elses-secret")

        with pytest.raises(InvalidSessionError):
            verify_session_token(token, os.environ["JWT_SECRET"])

    def test_missing_subject(self, make_session_token):
        token = make_session_token(subject=None)

        with pytest.raises(InvalidSessionError, match="Invalid token payload"):
            verify_session_token(token, os.environ["JWT_SECRET"])

    def test_garbage(self):
        with pytest.raises(InvalidSessionError):
            verify_session_token("not.a.jwt", os.environ["JWT_SECRET"])


class TestTokenCipher:

    def test_decrypts_stored_token(self):
        key = Fernet.generate_key().decode()
        stored = Fernet(key).encrypt(b"meta-token").decode()

        assert TokenCipher(key).decrypt(stored, context="meta:user-1") == "meta-token"

    def test_rejects_malformed_key(self):
        with pytest.raises(ValueError, match="TOKEN_ENCRYPTION_KEY"):
            TokenCipher("too-short")

    def test_foreign_key_ciphertext(self):
        stored = Fernet(Fernet.generate_key()).encrypt(b"meta-token").decode()

        with pytest.raises(ValueError, match="Unable to decrypt"):
            TokenCipher(Fernet.generate_key().decode()).decrypt(stored, context="meta:user-1")

    def test_empty_ciphertext(self, token_cipher):
        with pytest.raises(ValueError):
            token_cipher.decrypt("", context="meta:user-1")
