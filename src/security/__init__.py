"""
Password-based encryption and interactive authentication.

The cipher protects password columns and the store's protection marker;
the authenticator confirms a candidate password against that marker.
"""

from .authenticator import PasswordAuthenticator, no_credentials
from .cipher import DecryptionError, PasswordCipher

__all__ = ["DecryptionError", "PasswordAuthenticator", "PasswordCipher", "no_credentials"]
