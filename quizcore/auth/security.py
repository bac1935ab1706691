"""
Password hashing helpers (bcrypt).
"""
import secrets
import bcrypt


def hash_password(password: str, rounds: int = 12) -> str:
    """Generate a salted bcrypt hash for a password."""
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=rounds)
    ).decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """Check if the provided password matches the stored hash."""
    try:
        return bcrypt.checkpw(
            password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Over-long password or corrupt hash
        return False


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)
