from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="rewardapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "BIX Reward Engine"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "simple"  # simple | json

    # Database
    DATABASE_URL: str = "sqlite:///./rewardapi.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_STATEMENT_TIMEOUT_SECONDS: int = 15
    DB_CONNECT_TIMEOUT_SECONDS: int = 10

    # Identity provider
    JWT_SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"
    IDENTITY_VERIFY_URL: Optional[str] = None  # 설정 시 외부 IdP에 토큰 검증 위임
    IDENTITY_TIMEOUT_SECONDS: float = 10.0

    # Request signals
    IP_HASH_SALT: str = "bix-ip-salt"

    # Rate Limiting (인스턴스 로컬, best-effort)
    RATE_LIMIT_BACKEND: str = "memory"  # memory | redis
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_DEFAULT_PER_MINUTE: int = 10
    RATE_LIMIT_QUIZ_ANSWER_PER_MINUTE: int = 30
    RATE_LIMIT_CODE_IP_PER_MINUTE: int = 5
    LOCKOUT_THRESHOLD: int = 10
    LOCKOUT_WINDOW_SECONDS: int = 3600

    # Redis (RATE_LIMIT_BACKEND=redis 일 때만 사용)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Levels
    LEVEL_POINTS_DIVISOR: int = 500

    # Fraud scoring
    FRAUD_VELOCITY_WINDOW_MINUTES: int = 10
    FRAUD_VELOCITY_THRESHOLD: int = 5
    FRAUD_VELOCITY_PENALTY: float = 0.5
    FRAUD_IP_WINDOW_HOURS: int = 24
    FRAUD_IP_MAX_ACCOUNTS: int = 3
    FRAUD_IP_PENALTY: float = 0.25
    FRAUD_LOW_FLAG_PENALTY: float = 0.75
    FRAUD_MIN_MULTIPLIER: float = 0.1

    # Code windows
    CODE_LENGTH: int = 8
    CODE_MIN_INPUT_LENGTH: int = 6
    CODE_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    CODE_MAX_WINDOWS_PER_TASK_PER_DAY: int = 4
    CODE_DEFAULT_REWARD: int = 100
    CODE_DEFAULT_XP: int = 10
    CODE_BRUTE_FORCE_THRESHOLD: int = 8

    # Quiz
    QUIZ_VALID_COUNTS: list[int] = [5, 10, 20, 50]
    QUIZ_SESSION_TTL_MINUTES: int = 30
    QUIZ_MIN_ANSWER_SECONDS: float = 1.0
    QUIZ_PERFECT_BONUS_RATE: float = 0.5
    QUIZ_XP_PER_CORRECT: int = 5
    QUIZ_PERFECT_XP_BONUS: int = 50
    QUIZ_QUESTION_POOL_LIMIT: int = 200

    # Referral
    REFERRAL_SIGNUP_BONUS: int = 50
    REFERRAL_SIGNUP_XP: int = 25
    REFERRAL_REFERRER_REWARD: int = 100
    REFERRAL_REFERRER_XP: int = 50
    REFERRAL_DAILY_CAP: int = 10
    REFERRAL_COMMISSION_RATE: float = 0.10
    REFERRAL_COMMISSION_DELAY_HOURS: int = 24
    REFERRAL_MIN_ACTIVITIES: int = 2
    REFERRAL_IP_OVERLAP_DAYS: int = 7

    # Pending rewards
    PENDING_REWARD_XP: int = 10
    SWEEP_BATCH_LIMIT: int = 100

    # Daily check-in
    CHECKIN_BASE_REWARD: int = 10
    CHECKIN_STREAK_STEP: float = 0.5
    CHECKIN_MAX_MULTIPLIER: float = 5.0

    # Games
    GAME_MIN_BET: int = 10
    GAME_MAX_BET: int = 1000


settings = Settings()
