from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 10


def _normalize_password_for_bcrypt(password: str) -> bytes:
    """bcrypt only looks at the first 72 bytes; longer input raises on bcrypt>=4.1."""
    pw = (password or "").encode("utf-8")
    return pw[:72]


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(_normalize_password_for_bcrypt(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def password_looks_hashed(password: str) -> bool:
    return password.startswith(("$2a$", "$2b$", "$2y$"))


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_normalize_password_for_bcrypt(plain_password), password_hash.encode("utf-8"))
    except ValueError:
        return False
