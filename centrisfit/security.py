"""
Password hashing for admin accounts.

bcrypt is called directly rather than through passlib; bcrypt only looks at
the first 72 bytes of a password, so longer secrets are truncated explicitly.
"""

import bcrypt

DEFAULT_ROUNDS = 12


def _to_bcrypt_secret(password: str) -> bytes:
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """bcrypt hash as a UTF-8 string, ready for the password_hash column"""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_to_bcrypt_secret(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False
