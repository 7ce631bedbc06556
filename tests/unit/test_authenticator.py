from __future__ import annotations

from typing import List, Optional

import pytest
from pydantic import SecretStr

from security.authenticator import PasswordAuthenticator, no_credentials


EXPECTED = "mR3m"


class _ScriptedPrompt:
    def __init__(self, answers: List[Optional[str]]) -> None:
        self._answers = list(answers)
        self.calls = 0

    def __call__(self) -> Optional[SecretStr]:
        self.calls += 1
        if not self._answers:
            return None
        value = self._answers.pop(0)
        return SecretStr(value) if value is not None else None


def test_silent_first_attempt_skips_prompt(cipher):
    marker = cipher.encrypt(EXPECTED, EXPECTED)
    prompt = _ScriptedPrompt([])
    auth = PasswordAuthenticator(cipher, marker, prompt)

    assert auth.authenticate(EXPECTED, first_attempt=SecretStr(EXPECTED)) is True
    assert prompt.calls == 0
    assert auth.last_authenticated_password.get_secret_value() == EXPECTED


def test_prompts_until_correct_password(cipher):
    marker = cipher.encrypt(EXPECTED, "s3cret")
    prompt = _ScriptedPrompt(["nope", "s3cret"])
    auth = PasswordAuthenticator(cipher, marker, prompt)

    assert auth.authenticate(EXPECTED, first_attempt=SecretStr(EXPECTED)) is True
    assert prompt.calls == 2
    assert auth.last_authenticated_password.get_secret_value() == "s3cret"


def test_cancelled_prompt_returns_false(cipher):
    marker = cipher.encrypt(EXPECTED, "s3cret")
    prompt = _ScriptedPrompt([None])
    auth = PasswordAuthenticator(cipher, marker, prompt)

    assert auth.authenticate(EXPECTED) is False
    assert prompt.calls == 1
    assert auth.last_authenticated_password is None


def test_empty_password_counts_as_cancel(cipher):
    marker = cipher.encrypt(EXPECTED, "s3cret")
    prompt = _ScriptedPrompt(["", "s3cret"])
    auth = PasswordAuthenticator(cipher, marker, prompt)

    assert auth.authenticate(EXPECTED) is False
    assert prompt.calls == 1


def test_gives_up_after_max_attempts(cipher):
    marker = cipher.encrypt(EXPECTED, "s3cret")
    prompt = _ScriptedPrompt(["a", "b", "c", "s3cret"])
    auth = PasswordAuthenticator(cipher, marker, prompt, max_attempts=3)

    assert auth.authenticate(EXPECTED) is False
    assert prompt.calls == 3


def test_decryptable_but_wrong_plaintext_is_rejected(cipher):
    # Key decrypts the marker fine, but to a different value
    marker = cipher.encrypt("something else", "s3cret")
    prompt = _ScriptedPrompt(["s3cret"])
    auth = PasswordAuthenticator(cipher, marker, prompt, max_attempts=1)

    assert auth.authenticate(EXPECTED) is False
    assert auth.last_authenticated_password is None


def test_garbage_marker_never_authenticates(cipher):
    prompt = _ScriptedPrompt(["x", "y"])
    auth = PasswordAuthenticator(cipher, "garbage", prompt, max_attempts=2)
    assert auth.authenticate(EXPECTED, first_attempt=SecretStr(EXPECTED)) is False


def test_default_requestor_declines(cipher):
    marker = cipher.encrypt(EXPECTED, "s3cret")
    auth = PasswordAuthenticator(cipher, marker)
    assert no_credentials() is None
    assert auth.authenticate(EXPECTED) is False


def test_max_attempts_must_be_positive(cipher):
    with pytest.raises(ValueError):
        PasswordAuthenticator(cipher, "x", no_credentials, max_attempts=0)
