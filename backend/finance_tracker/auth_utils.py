import hashlib
import secrets

_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


def _derive(password: str, salt: str) -> str:
    digest = hashlib.scrypt(password.encode("utf-8"), salt=salt.encode("utf-8"), n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P, dklen=64)
    return digest.hex()


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    return f"{_derive(password, salt)}.{salt}"


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        expected, salt = stored_hash.rsplit(".", 1)
    except ValueError:
        return False
    return secrets.compare_digest(_derive(password, salt), expected)


def new_session_token() -> str:
    return secrets.token_urlsafe(32)
