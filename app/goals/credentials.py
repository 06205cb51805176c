"""Password hashing for registration."""

from __future__ import annotations

from passlib.context import CryptContext


class CredentialHasher:
    def __init__(self) -> None:
        self._pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

    def hash(self, password: str) -> str:
        return self._pwd.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        return self._pwd.verify(password, password_hash)
