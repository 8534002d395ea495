from typing import Any, List, Optional, Tuple, Union
from uuid import UUID

import asyncpg

from src.common.logger import log_info, log_warning
from src.core.auth.passwords import generate_salt, hash_password, verify_password
from src.core.auth.token_service import InvalidTokenError, TokenClaims, TokenService
from src.services.delivery_service.errors import (
    BadParametersError,
    ConflictError,
    NotAuthorizedError,
    NotFoundError,
)
from src.services.delivery_service.repository import AdminRepository
from src.shared.models.admin import Admin


class AdminService:
    """Administrator accounts and their tokens."""

    def __init__(self, repository: AdminRepository, token_service: TokenService):
        self.repository = repository
        self.token_service = token_service

    @staticmethod
    def normalize_login(login: str) -> str:
        return login.strip().lower()

    def _claims_for(self, admin: Admin) -> TokenClaims:
        return TokenClaims.for_admin(str(admin.id), admin.login, admin.claims)

    async def login(self, login: str, password: str) -> Tuple[Admin, str, str]:
        """Returns (admin, access_token, refresh_token)."""
        credentials = await self.repository.get_credentials(self.normalize_login(login))
        if not credentials:
            raise NotAuthorizedError(desc="BAD_CREDENTIALS")
        if not verify_password(password, credentials.salt, credentials.password_hash):
            await log_warning(f"Bad password for admin {credentials.admin.login}")
            raise NotAuthorizedError(desc="BAD_CREDENTIALS")

        admin = credentials.admin
        claims = self._claims_for(admin)
        await self.repository.touch_last_active(admin.id)
        return (
            admin,
            self.token_service.generate_access_token(claims),
            self.token_service.generate_refresh_token(claims),
        )

    async def refresh(self, refresh_token: Optional[str]) -> str:
        if not refresh_token:
            raise NotAuthorizedError("REFRESH_TOKEN_NOT_PROVIDED")
        try:
            decoded = self.token_service.verify_token(refresh_token, expected_type="refresh")
        except InvalidTokenError as e:
            raise BadParametersError(desc=f"BAD_TOKEN: {e}")

        admin = await self.get_admin(decoded.subject_id) if decoded.is_admin else None
        if not admin:
            raise NotAuthorizedError(desc="USER_NOT_FOUND")

        await self.repository.touch_last_active(admin.id)
        return self.token_service.generate_access_token(self._claims_for(admin))

    async def get_admin(self, admin_id: Union[str, UUID, None]) -> Optional[Admin]:
        try:
            admin_uuid = admin_id if isinstance(admin_id, UUID) else UUID(str(admin_id))
        except ValueError:
            return None
        return await self.repository.get_by_id(admin_uuid)

    async def list_admins(self, limit: int, offset: int, count: bool = False) -> Union[int, List[Admin]]:
        if count:
            return await self.repository.count()
        return await self.repository.list(limit=limit, offset=offset)

    async def create_admin(
        self,
        login: str,
        password: str,
        name: Optional[str] = None,
        claims: Optional[dict[str, Any]] = None,
    ) -> Admin:
        salt = generate_salt()
        admin = await self.repository.create(
            login=self.normalize_login(login),
            password_hash=hash_password(password, salt),
            salt=salt,
            name=name,
            claims=claims or {},
        )
        if admin is None:
            raise ConflictError("ADMIN_ALREADY_EXIST")
        await log_info(f"Admin {admin.login} created")
        return admin

    async def update_admin(
        self,
        admin_id: UUID,
        login: Optional[str] = None,
        password: Optional[str] = None,
        name: Optional[str] = None,
        claims: Optional[dict[str, Any]] = None,
    ) -> Admin:
        salt = generate_salt() if password else None
        try:
            admin = await self.repository.update(
                admin_id,
                login=self.normalize_login(login) if login else None,
                name=name,
                password_hash=hash_password(password, salt) if password else None,
                salt=salt,
                claims=claims,
            )
        except asyncpg.UniqueViolationError:
            raise ConflictError("ADMIN_ALREADY_EXIST")
        if admin is None:
            raise NotFoundError("USER_NOT_FOUND")
        return admin

    async def delete_admin(self, admin_id: UUID) -> bool:
        deleted = await self.repository.delete(admin_id)
        if deleted:
            await log_warning(f"Admin {admin_id} deleted")
        return deleted
