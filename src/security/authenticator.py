from __future__ import annotations

import logging
from typing import Callable, Optional

from pydantic import SecretStr

from .cipher import DecryptionError, PasswordCipher


logger = logging.getLogger(__name__)

AuthenticationRequestor = Callable[[], Optional[SecretStr]]


def no_credentials() -> Optional[SecretStr]:
    """Requestor for non-interactive contexts: always declines."""
    return None


class PasswordAuthenticator:
    """
    Confirms a password by decrypting a known marker.

    A candidate is accepted only when the marker decrypts without error AND the
    plaintext equals the expected value exactly. Rejected candidates lead to a
    new prompt, up to `max_attempts` prompts. The optional `first_attempt`
    passed to `authenticate()` is tried silently and does not count as a prompt.
    """

    def __init__(
        self,
        cipher: PasswordCipher,
        cipher_text: str,
        authentication_requestor: AuthenticationRequestor = no_credentials,
        *,
        max_attempts: int = 3,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self._cipher = cipher
        self._cipher_text = cipher_text
        self._requestor = authentication_requestor
        self._max_attempts = max_attempts
        self.last_authenticated_password: Optional[SecretStr] = None

    def _confirms(self, candidate: SecretStr, expected_plaintext: str) -> bool:
        try:
            plaintext = self._cipher.decrypt(self._cipher_text, candidate)
        except DecryptionError:
            return False
        return plaintext == expected_plaintext

    def authenticate(self, expected_plaintext: str, first_attempt: Optional[SecretStr] = None) -> bool:
        if first_attempt is not None and self._confirms(first_attempt, expected_plaintext):
            self.last_authenticated_password = first_attempt
            return True

        for attempt in range(1, self._max_attempts + 1):
            candidate = self._requestor()
            if candidate is None or not candidate.get_secret_value():
                logger.info("Password prompt cancelled")
                return False
            if self._confirms(candidate, expected_plaintext):
                self.last_authenticated_password = candidate
                return True
            logger.warning("Password rejected (attempt %d of %d)", attempt, self._max_attempts)

        return False
