"""
외부 Identity Provider 연동

토큰 발급은 범위 밖이며, 여기서는 Bearer 토큰을 검증하여 불투명 사용자 식별자만
반환한다. IDENTITY_VERIFY_URL 이 설정되면 IdP 검증 API 를 호출하고, 아니면
공유 시크릿으로 JWT 를 직접 검증한다.
"""

import logging

import httpx

from rewardapi.config import Settings
from rewardapi.core.exceptions import AuthenticationError, ServiceUnavailableError
from rewardapi.core.security import decode_access_token, extract_subject

logger = logging.getLogger(__name__)


class IdentityService:
    def __init__(self, settings: Settings):
        self.settings = settings

    def verify_token(self, token: str) -> str:
        """
        토큰 검증 후 user_id 반환

        Raises:
            AuthenticationError: 토큰이 유효하지 않은 경우 (401)
            ServiceUnavailableError: IdP 호출 타임아웃 (재시도 가능)
        """
        if not token:
            raise AuthenticationError()

        if self.settings.IDENTITY_VERIFY_URL:
            return self._verify_remote(token)

        payload = decode_access_token(
            token, self.settings.JWT_SECRET_KEY, self.settings.JWT_ALGORITHM
        )
        return extract_subject(payload)

    def _verify_remote(self, token: str) -> str:
        try:
            response = httpx.post(
                self.settings.IDENTITY_VERIFY_URL,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.settings.IDENTITY_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException:
            logger.warning("Identity provider timed out")
            raise ServiceUnavailableError("Identity provider timed out")
        except httpx.HTTPError as e:
            logger.error(f"Identity provider request failed: {e}")
            raise ServiceUnavailableError("Identity provider unavailable")

        if response.status_code != 200:
            raise AuthenticationError()

        body = response.json()
        user_id = body.get("userId") or body.get("user_id")
        if not body.get("valid") or not user_id:
            raise AuthenticationError()
        return str(user_id)
