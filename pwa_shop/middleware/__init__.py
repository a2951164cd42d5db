"""
인증 의존성
"""

from pwa_shop.middleware.auth import (
    get_current_user,
    get_token_claims,
    require_admin,
)

__all__ = [
    "get_current_user",
    "get_token_claims",
    "require_admin",
]
