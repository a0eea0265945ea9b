import bcrypt
import structlog

logger = structlog.get_logger()

MIN_PASSWORD_LENGTH = 8
# bcrypt only reads the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    return bcrypt.hashpw(
        password.encode()[:_BCRYPT_MAX_BYTES], bcrypt.gensalt()
    ).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(
            password.encode()[:_BCRYPT_MAX_BYTES], password_hash.encode()
        )
    except ValueError as exc:
        # Malformed stored hash
        logger.warning("password_hash_unreadable", error=str(exc))
        return False
