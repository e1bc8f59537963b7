from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rewardapi.core.exceptions import AuthenticationError

# JWT Bearer 토큰 스킴
security = HTTPBearer(auto_error=False)


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """필수 사용자 인증 - 유효한 토큰이 필요함 (실패 시 상세 사유 없이 401)"""
    if not credentials or not credentials.credentials:
        raise AuthenticationError()

    identity_service = request.app.container.infrastructure.identity_service()
    return identity_service.verify_token(credentials.credentials)
