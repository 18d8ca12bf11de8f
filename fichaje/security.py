from __future__ import annotations

import secrets
import string

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from fichaje.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# No ambiguous characters (0/O, 1/l/I).
_PASSWORD_ALPHABET = "".join(
    char for char in string.ascii_letters + string.digits if char not in "0O1lI"
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def generate_temporary_password(length: int | None = None) -> str:
    size = max(8, length or get_settings().temporary_password_length)
    while True:
        candidate = "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(size))
        if (
            any(char.islower() for char in candidate)
            and any(char.isupper() for char in candidate)
            and any(char.isdigit() for char in candidate)
        ):
            return candidate
