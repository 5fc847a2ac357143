from typing import Optional

from passlib.context import CryptContext

# -----------------------------
# DM secret hashing helpers
# -----------------------------


def build_context(rounds: int = 12) -> CryptContext:
    """Return a bcrypt :class:`CryptContext` using *rounds* as the work factor."""
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


pwd_context = build_context()


def hash_password(password: str, context: CryptContext = pwd_context) -> str:
    """Return a bcrypt hash of *password*."""
    return context.hash(password)


def verify_password(password: str, hashed: str, context: CryptContext = pwd_context) -> bool:
    """Verify *password* against *hashed* bcrypt digest."""
    return context.verify(password, hashed)


def derive_dm_secret_hash(secret: Optional[str], rounds: int = 12) -> Optional[str]:
    """Hash the configured DM secret once; ``None`` disables DM login."""
    if not secret:
        return None
    return hash_password(secret, build_context(rounds))


__all__ = [
    "pwd_context",
    "build_context",
    "hash_password",
    "verify_password",
    "derive_dm_secret_hash",
]
