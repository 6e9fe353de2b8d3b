"""bcrypt password hashing.

bcrypt only looks at the first 72 bytes and recent releases refuse longer
input, so passwords are cut to 72 utf-8 bytes on both paths.
"""

import bcrypt

_BCRYPT_MAX_BYTES = 72


def _secret(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(_secret(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_secret(plain), hashed.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False
