"""Session verification and stored-token decryption.

WHAT:
    - verify_session_token: checks the session JWT issued by the auth service
      and returns the tenant id carried in its subject.
    - TokenCipher: decrypts the Meta access tokens stored Fernet-encrypted in
      `meta_connections`.

WHY:
    This service only reads: it never issues sessions and never stores
    provider tokens, so only the verifying and decrypting halves live here.
    Keys come from Settings (JWT_SECRET, TOKEN_ENCRYPTION_KEY).

REFERENCES:
    - cartrecovery/deps.py (get_current_user_id, get_token_cipher)
    - cartrecovery/services/ads_connection.py (token decryption)
"""

import logging
from typing import Sequence

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

logger = logging.getLogger(__name__)


DEFAULT_ALGORITHMS = ("HS256",)


class InvalidSessionError(Exception):
    """Session token is malformed, expired, forged or has no subject."""
    pass


def verify_session_token(token: str, secret: str, algorithms: Sequence[str] = DEFAULT_ALGORITHMS) -> str:
    """Return the user id (`sub`) of a valid session JWT.

    Raises:
        InvalidSessionError: Bad signature, expired, or missing subject.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except JWTError as exc:
        raise InvalidSessionError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise InvalidSessionError("Invalid token payload")
    return str(subject)


class TokenCipher:
    """Decrypts provider tokens with the service's Fernet key.

    Usage:
        ```python
        cipher = TokenCipher(settings.TOKEN_ENCRYPTION_KEY)
        access_token = cipher.decrypt(connection.access_token_enc, context="meta:user-1")
        ```
    """

    def __init__(self, key: str):
        """
        Raises:
            ValueError: `key` is not a URL-safe base64-encoded 32-byte key.
        """
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise ValueError(
                "TOKEN_ENCRYPTION_KEY must be a URL-safe base64-encoded 32-byte key"
            ) from exc

    def decrypt(self, ciphertext: str, *, context: str) -> str:
        """Plaintext of a stored token; `context` labels log lines only.

        Raises:
            ValueError: Empty value, or not encrypted with this key.
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty secret.")

        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            logger.error("[TOKEN_DECRYPT] Invalid ciphertext for %s", context)
            raise ValueError("Unable to decrypt stored token.") from exc

        logger.info("[TOKEN_DECRYPT] Token decrypted for %s (length=%d)", context, len(plaintext))
        return plaintext
