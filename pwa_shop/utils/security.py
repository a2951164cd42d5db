"""
JWT 유틸리티

알림 API는 토큰을 발급하지 않고 검증만 합니다.
create_access_token은 테스트와 내부 도구용입니다.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from pwa_shop.config import get_settings

ACCESS_TOKEN_TYPE = "access"


class TokenClaims(BaseModel):
    """알림 API가 사용하는 access token 클레임"""

    sub: str
    role: str = "customer"
    email: Optional[str] = None
    type: str = ACCESS_TOKEN_TYPE


class JWTManager:
    @staticmethod
    def create_access_token(
        subject: str,
        role: str = "customer",
        email: Optional[str] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Example:
            >>> token = JWTManager.create_access_token(str(user.id), role="admin")
        """
        settings = get_settings()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        claims = TokenClaims(sub=subject, role=role, email=email).model_dump(exclude_none=True)
        claims["exp"] = expire
        return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def decode_access_token(token: str) -> TokenClaims:
        """
        서명/만료/토큰 타입 검증 후 클레임 반환

        Raises:
            ValueError: 토큰이 유효하지 않거나, 만료됐거나, access token이 아닌 경우
        """
        settings = get_settings()
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
            claims = TokenClaims.model_validate(payload)
        except (JWTError, ValidationError) as e:
            raise ValueError(f"Invalid token: {e}")

        if claims.type != ACCESS_TOKEN_TYPE:
            raise ValueError("잘못된 토큰 타입입니다.")
        return claims
