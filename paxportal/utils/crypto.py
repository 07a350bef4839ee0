"""
Crypto utilities — bcrypt password hashing, temporary passwords and
Fernet decryption of the stored Google service-account credential.

Symmetric encryption:
  ``decrypt_secret`` uses Fernet keyed by the ENCRYPTION_KEY environment
  variable. GOOGLE_SERVICE_ACCOUNT_JSON may be given either as plain JSON
  or as a Fernet token (``gAAAA…``) produced by ``encrypt_secret``.
"""

import os
import secrets

import bcrypt
from cryptography.fernet import Fernet

# Ambiguous glyphs (0/O, 1/l/I) removed so passwords can be read aloud
TEMP_PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz23456789!@#$"
TEMP_PASSWORD_LENGTH = 10


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))


def generate_temp_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


# ── Fernet symmetric encryption ──────────────────────────────────────────────


def _get_fernet() -> Fernet:
    raw_key = os.getenv("ENCRYPTION_KEY")
    if not raw_key:
        raise RuntimeError(
            "ENCRYPTION_KEY environment variable is not set. "
            "Generate one with: python -c \""
            "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )
    return Fernet(raw_key.encode())


def encrypt_secret(plaintext: str) -> str:
    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a Fernet token produced by ``encrypt_secret``.

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not set.
        cryptography.fernet.InvalidToken: If the token was tampered with.
    """
    return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")


def looks_encrypted(value: str) -> bool:
    return value.startswith("gAAAA")
