# backend/utils/hashing.py
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# Hash a plain-text password for storage
def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# Compare a plain-text password with a stored hash; malformed hashes never match
def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(plain_password, password_hash)
    except (UnknownHashError, ValueError):
        return False
