from unittest.mock import Mock, patch

import httpx
import pytest

from rewardapi.config import Settings
from rewardapi.core.exceptions import AuthenticationError, ServiceUnavailableError
from rewardapi.core.security import create_access_token
from rewardapi.services.identity_service import IdentityService


class TestLocalVerification:
    """공유 시크릿 JWT 검증"""

    def test_valid_token(self, test_settings):
        token = create_access_token({"sub": "idp|42"}, "test-secret")

        assert IdentityService(test_settings).verify_token(token) == "idp|42"

    def test_user_id_claim(self, test_settings):
        token = create_access_token({"user_id": 42}, "test-secret")

        assert IdentityService(test_settings).verify_token(token) == "42"

    def test_token_without_subject(self, test_settings):
        token = create_access_token({"role": "user"}, "test-secret")

        with pytest.raises(AuthenticationError):
            IdentityService(test_settings).verify_token(token)

    def test_empty_token(self, test_settings):
        with pytest.raises(AuthenticationError):
            IdentityService(test_settings).verify_token("")


class TestRemoteVerification:
    """IdP 검증 API 위임"""

    @pytest.fixture
    def remote_settings(self):
        return Settings(IDENTITY_VERIFY_URL="https://idp.example.com/verify")

    @patch("rewardapi.services.identity_service.httpx.post")
    def test_valid(self, mock_post, remote_settings):
        mock_post.return_value = Mock(
            status_code=200, json=Mock(return_value={"valid": True, "userId": "u-1"})
        )

        assert IdentityService(remote_settings).verify_token("opaque") == "u-1"
        assert mock_post.call_args.kwargs["headers"] == {"Authorization": "Bearer opaque"}

    @patch("rewardapi.services.identity_service.httpx.post")
    def test_rejected(self, mock_post, remote_settings):
        mock_post.return_value = Mock(status_code=401)

        with pytest.raises(AuthenticationError):
            IdentityService(remote_settings).verify_token("opaque")

    @patch("rewardapi.services.identity_service.httpx.post")
    def test_timeout_is_retryable(self, mock_post, remote_settings):
        mock_post.side_effect = httpx.ReadTimeout("slow")

        with pytest.raises(ServiceUnavailableError):
            IdentityService(remote_settings).verify_token("opaque")
