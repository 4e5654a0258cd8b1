"""
Password hashing and verification (bcrypt).
"""
import os

import bcrypt

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def _rounds() -> int:
    return int(os.getenv("BCRYPT_ROUNDS", "12"))


def hash_password(raw_password: str) -> str:
    raw = raw_password.encode("utf-8")[:MAX_PASSWORD_BYTES]
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=_rounds())).decode("utf-8")


def verify_password(raw_password: str, password_hash: str) -> bool:
    raw = raw_password.encode("utf-8")[:MAX_PASSWORD_BYTES]
    try:
        return bcrypt.checkpw(raw, password_hash.encode("utf-8"))
    except ValueError:
        return False
