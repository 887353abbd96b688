"""Password hashing utilities.

New passwords are hashed with bcrypt (work factor 12). Accounts imported
from the previous platform carry scrypt hashes in "hexdigest.salt" form;
those still verify and are upgraded to bcrypt on the next login.
"""

import hashlib
import hmac

import bcrypt


def hash_password(password: str) -> str:
    """Hash a password with bcrypt.

    Passwords are truncated to 72 bytes (bcrypt's limit).
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt or imported scrypt hash."""
    if _is_legacy_hash(password_hash):
        return _verify_legacy(password, password_hash)
    try:
        pw_bytes = password.encode("utf-8")[:72]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def needs_upgrade(password_hash: str) -> bool:
    """Check if a password hash should be upgraded to bcrypt."""
    return _is_legacy_hash(password_hash)


def _is_legacy_hash(password_hash: str) -> bool:
    return not password_hash.startswith("$2")


def _verify_legacy(password: str, password_hash: str) -> bool:
    """Verify an imported scrypt hash (N=16384, r=8, p=1, 64-byte key)."""
    try:
        hashed, salt = password_hash.split(".", 1)
        expected = bytes.fromhex(hashed)
        supplied = hashlib.scrypt(
            password.encode("utf-8"),
            salt=salt.encode("utf-8"),
            n=16384, r=8, p=1, dklen=64,
        )
    except ValueError:
        return False
    return hmac.compare_digest(expected, supplied)
