from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from rewardapi.utils.codes import hash_ip


@dataclass(frozen=True)
class ClientSignals:
    """어뷰징 상관분석용 요청 신호. device_hash 부재는 허용된다."""

    ip: Optional[str] = None
    ip_hash: Optional[str] = None
    device_hash: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_values(
        cls,
        ip: Optional[str] = None,
        device_hash: Optional[str] = None,
        user_agent: Optional[str] = None,
        salt: str = "",
    ) -> "ClientSignals":
        return cls(
            ip=ip,
            ip_hash=hash_ip(ip, salt),
            device_hash=device_hash or None,
            user_agent=user_agent or None,
        )


def _get_client_ip(request: Request) -> Optional[str]:
    """클라이언트 IP 주소 추출 (CDN/프록시 헤더 우선)"""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    x_forwarded_for = request.headers.get("x-forwarded-for")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else None


def get_client_signals(request: Request) -> ClientSignals:
    settings = request.app.container.config.config()
    return ClientSignals.from_values(
        ip=_get_client_ip(request),
        device_hash=request.headers.get("x-device-hash"),
        user_agent=request.headers.get("user-agent"),
        salt=settings.IP_HASH_SALT,
    )
