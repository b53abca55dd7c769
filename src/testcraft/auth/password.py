"""bcrypt password hashing.

Learn: bcrypt salts every hash itself and only looks at the first 72
bytes of its input, so passwords are encoded and clipped the same way on
both sides. Invited users exist without a password until they register;
their hash is None and never verifies.
"""

import bcrypt

BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72


def _secret(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return a "$2b$..." hash. Tests pass a low `rounds` to stay fast."""
    return bcrypt.hashpw(_secret(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str | None) -> bool:
    if password_hash is None or not password_hash.startswith("$2"):
        return False
    try:
        return bcrypt.checkpw(_secret(password), password_hash.encode("ascii"))
    except ValueError:
        # Malformed hash in the database.
        return False
