from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from rewardapi.config import settings


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        # SQLite는 테스트/로컬 전용. 스레드 간 커넥션 공유 허용
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.DB_STATEMENT_TIMEOUT_SECONDS,
            }
        }

    kwargs: Dict[str, Any] = {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,  # 연결 유효성 검사
        "pool_recycle": 3600,  # 1시간마다 연결 재생성
        "pool_timeout": settings.DB_STATEMENT_TIMEOUT_SECONDS,
    }
    if database_url.startswith("postgresql"):
        statement_timeout_ms = settings.DB_STATEMENT_TIMEOUT_SECONDS * 1000
        kwargs["connect_args"] = {
            "connect_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
            "options": f"-c statement_timeout={statement_timeout_ms}",
        }
    return kwargs


def build_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or settings.DATABASE_URL
    return create_engine(url, echo=settings.DEBUG, **_engine_kwargs(url))


engine = build_engine()

# Use expire_on_commit=False to avoid DetachedInstanceError when accessing
# attributes after commit within the same request scope (common FastAPI pattern).
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)
