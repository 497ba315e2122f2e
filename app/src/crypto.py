"""
Secret handling helpers.

- Passwords are hashed with Argon2 and never stored in plain text.
- Card numbers are encrypted with Fernet (AES-128-CBC + HMAC-SHA256) using
  `CARD_ENCRYPTION_KEY`; only the last four digits stay readable.
"""

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError
from cryptography.fernet import Fernet

from app.src.constants import CARD_ENCRYPTION_KEY

passwordHasher = PasswordHasher(encoding="utf-8")
cardCipher = Fernet(CARD_ENCRYPTION_KEY.encode("utf-8"))


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------
def makePassword(password: str) -> str:
    """
    Hash a plain-text password using Argon2.

    Returns:
        str: The Argon2 hash of the given password.
    """
    return passwordHasher.hash(password)


def checkPassword(password: str, actual_password: str) -> bool:
    """
    Verify a plain-text password against a stored Argon2 hash.

    Args:
        password (str): The plain-text password to check.
        actual_password (str): The stored Argon2 hash of the password.

    Returns:
        bool: True if the password matches the hash, False otherwise.
    """
    try:
        passwordHasher.verify(actual_password, password)
        return True
    except VerifyMismatchError:
        return False


# ---------------------------------------------------------------------------
# Card numbers
# ---------------------------------------------------------------------------
def encryptCardNumber(card_number: str) -> str:
    """Encrypt a card number, returning the url-safe Fernet token."""
    return cardCipher.encrypt(card_number.encode("utf-8")).decode("utf-8")


def lastFourDigits(card_number: str) -> str:
    return card_number[-4:]
