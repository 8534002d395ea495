# src/core/auth/passwords.py
"""
Хэширование паролей администраторов (PBKDF2-HMAC-SHA256 с солью на пользователя).
"""

import hashlib
import hmac
import secrets

PBKDF2_ITERATIONS = 260_000


def generate_salt() -> str:
    return secrets.token_hex(16)


def hash_password(password: str, salt: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return digest.hex()


def verify_password(password: str, salt: str, password_hash: str) -> bool:
    """Сравнение за постоянное время."""
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def generate_password(length: int = 12) -> str:
    """Случайный пароль из букв и цифр (для create-admin без явного пароля)."""
    alphabet = "abcdefghijkmnopqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))
