# tests/core/test_token_service.py
"""
Тесты выпуска и проверки JWT.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from src.core.auth.token_service import InvalidTokenError, TokenClaims, TokenService


class TestTokenService:

    def test_empty_secret_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenService(secret="")

    def test_driver_token_roundtrip(self, token_service: TokenService) -> None:
        token = token_service.generate_access_token(TokenClaims.for_driver_shift("shift-1", "D1", "V1"))

        claims = token_service.verify_token(token)

        assert claims.subject_id == "shift-1"
        assert claims.driver_code == "D1"
        assert claims.vehicle_code == "V1"
        assert claims.is_driver
        assert not claims.is_admin

    def test_payload_uses_wire_names(self, token_service: TokenService) -> None:
        token = token_service.generate_access_token(TokenClaims.for_admin("admin-1", "root", {"routes": True}))

        payload = jwt.decode(token, "test_jwt_secret", algorithms=["HS256"])

        assert payload["_id"] == "admin-1"
        assert payload["isAdmin"] is True
        assert payload["typ"] == "access"
        assert payload["exp"] - payload["iat"] == 3600

    def test_anonymous_token_is_not_driver(self, token_service: TokenService) -> None:
        token = token_service.generate_access_token(TokenClaims.for_anonymous())

        claims = token_service.verify_token(token)

        assert claims.anonymous_user
        assert not claims.is_driver

    def test_refresh_token_is_not_access_token(self, token_service: TokenService) -> None:
        refresh = token_service.generate_refresh_token(TokenClaims.for_admin("admin-1", "root"))

        with pytest.raises(InvalidTokenError):
            token_service.verify_token(refresh)
        assert token_service.verify_token(refresh, expected_type="refresh").login == "root"

    def test_wrong_secret(self, token_service: TokenService) -> None:
        token = TokenService(secret="other").generate_access_token(TokenClaims.for_anonymous())

        with pytest.raises(InvalidTokenError):
            token_service.verify_token(token)

    def test_expired_token(self, token_service: TokenService) -> None:
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"_id": "s", "typ": "access", "iat": past, "exp": past + timedelta(minutes=1)},
            "test_jwt_secret",
            algorithm="HS256",
        )

        with pytest.raises(InvalidTokenError, match="expired"):
            token_service.verify_token(token)

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_malformed_token(self, token_service: TokenService, token: str) -> None:
        with pytest.raises(InvalidTokenError):
            token_service.verify_token(token)
