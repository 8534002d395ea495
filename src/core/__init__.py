# src/core/__init__.py
"""
Доменный слой (Core Domain).
Примитивы, не зависящие от инфраструктуры: токены и пароли.
"""

from src.core.auth import InvalidTokenError, TokenClaims, TokenService

__all__ = [
    "InvalidTokenError",
    "TokenClaims",
    "TokenService",
]
