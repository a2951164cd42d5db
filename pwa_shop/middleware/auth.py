"""
인증 의존성

알림 API의 Bearer 토큰을 검증하고 요청 사용자를 조회합니다.
실패는 AppException(401/403)으로 올려 전역 핸들러가 JSON 응답으로 변환합니다.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from pwa_shop.models.base import get_db
from pwa_shop.models.user import User, UserStatus
from pwa_shop.utils.exceptions import ForbiddenException, UnauthorizedException
from pwa_shop.utils.security import JWTManager, TokenClaims

# 헤더가 없을 때도 401로 통일하기 위해 auto_error=False
bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenClaims:
    if credentials is None:
        raise UnauthorizedException("Authorization header required")

    try:
        return JWTManager.decode_access_token(credentials.credentials)
    except ValueError as e:
        raise UnauthorizedException(str(e))


async def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    토큰의 sub로 사용자 조회

    Raises:
        UnauthorizedException: sub 형식 오류, 사용자 없음, 비활성 계정
    """
    try:
        user_id = UUID(claims.sub)
    except ValueError:
        raise UnauthorizedException("잘못된 사용자 ID 형식입니다.")

    user = await db.get(User, user_id)
    if user is None:
        raise UnauthorizedException("사용자를 찾을 수 없습니다.")
    if user.status != UserStatus.ACTIVE.value:
        raise UnauthorizedException("비활성화된 계정입니다.")

    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise ForbiddenException("Admin access required")
    return current_user
