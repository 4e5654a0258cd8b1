"""Authentication: bcrypt passwords and JWT bearer tokens."""

from .jwt import Token, create_access_token, get_current_user, issue_token, verify_token
from .passwords import hash_password, verify_password

__all__ = [
    "Token",
    "create_access_token",
    "get_current_user",
    "hash_password",
    "issue_token",
    "verify_password",
    "verify_token",
]
