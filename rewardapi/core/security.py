from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from rewardapi.core.exceptions import AuthenticationError


def create_access_token(
    data: dict,
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """IdP 와 같은 형식의 토큰 발급 (로컬 개발/테스트용)"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        raise AuthenticationError()


def extract_subject(payload: Dict[str, Any]) -> str:
    """sub 또는 user_id 클레임을 불투명 식별자로 사용"""
    subject = payload.get("sub") or payload.get("user_id")
    if not subject:
        raise AuthenticationError()
    return str(subject)
