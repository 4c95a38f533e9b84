"""
Crypto utilities: bcrypt password hashing.

Used for user passwords and for the shared edit-mode password. Plain
passwords are never stored or logged; only bcrypt hashes reach the database.
"""

import bcrypt


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain-text password against its bcrypt hash.

    Returns False for empty hashes and for anything that is not a bcrypt hash.
    """
    if not password_hash or plain_password is None:
        return False
    if not password_hash.startswith(("$2b$", "$2a$", "$2y$")):
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )
