# src/core/auth/__init__.py
"""
Примитивы аутентификации: JWT токены и хэширование паролей.
"""

from src.core.auth.token_service import TokenClaims, TokenService, InvalidTokenError, get_token_service
from src.core.auth.passwords import hash_password, verify_password, generate_salt

__all__ = [
    "TokenClaims",
    "TokenService",
    "InvalidTokenError",
    "get_token_service",
    "hash_password",
    "verify_password",
    "generate_salt",
]
