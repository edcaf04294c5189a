"""
bcrypt hashing for client secrets and user passwords.

These are CPU bound; async callers go through ``starlette.concurrency.run_in_threadpool``.
"""

import secrets
import bcrypt
from filtro_api.config import get_settings


def hash_secret(raw: str) -> str:
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(raw.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_secret(raw: str, hashed: str) -> bool:
    """Constant-time check. Malformed hashes or over-long inputs never verify."""
    if not raw or not hashed:
        return False
    try:
        return bcrypt.checkpw(raw.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def generate_secret() -> str:
    return secrets.token_hex(24)
