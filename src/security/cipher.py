from __future__ import annotations

import base64
import binascii
import os
from typing import Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import SecretStr


DEFAULT_KDF_ITERATIONS = 10_000
SALT_SIZE = 16

Password = Union[str, SecretStr]


class DecryptionError(ValueError):
    """Ciphertext is malformed or the password does not match."""


def _secret(password: Password) -> bytes:
    if isinstance(password, SecretStr):
        password = password.get_secret_value()
    return password.encode("utf-8")


class PasswordCipher:
    """
    Password-based symmetric encryption of short strings.

    - A fresh random salt per value feeds PBKDF2-HMAC-SHA256, which derives
      the Fernet key (AES-128-CBC + HMAC-SHA256).
    - Output is urlsafe base64 of `salt || fernet_token`, safe to store in a
      text column or XML attribute.
    - Reading requires the same iteration count that was used for writing.
    """

    def __init__(self, *, iterations: int = DEFAULT_KDF_ITERATIONS) -> None:
        if iterations <= 0:
            raise ValueError("iterations must be > 0")
        self._iterations = iterations

    @property
    def iterations(self) -> int:
        return self._iterations

    def _fernet(self, password: Password, salt: bytes) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self._iterations,
        )
        return Fernet(base64.urlsafe_b64encode(kdf.derive(_secret(password))))

    def encrypt(self, plaintext: str, password: Password) -> str:
        salt = os.urandom(SALT_SIZE)
        token = self._fernet(password, salt).encrypt(plaintext.encode("utf-8"))
        return base64.urlsafe_b64encode(salt + token).decode("ascii")

    def decrypt(self, cipher_text: str, password: Password) -> str:
        try:
            raw = base64.urlsafe_b64decode(cipher_text.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError, ValueError) as ex:
            raise DecryptionError("Ciphertext is not valid base64") from ex
        if len(raw) <= SALT_SIZE:
            raise DecryptionError("Ciphertext is too short")

        salt, token = raw[:SALT_SIZE], raw[SALT_SIZE:]
        try:
            data = self._fernet(password, salt).decrypt(token)
        except InvalidToken as ex:
            raise DecryptionError("Failed to decrypt: invalid password or token") from ex

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise DecryptionError("Decrypted payload is not UTF-8 text") from ex
