from dependency_injector import containers, providers

from rewardapi.config import settings
from rewardapi.services.identity_service import IdentityService
from rewardapi.services.ledger_service import ActorLockRegistry
from rewardapi.services.rate_limit_service import (
    build_lockout_tracker,
    build_rate_limiter,
)


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration.

    모듈 전역 settings 를 그대로 제공한다. 테스트는 이 provider 를 override 한다.
    """

    config = providers.Object(settings)


class InfrastructureModule(containers.DeclarativeContainer):
    """
    프로세스 단위 싱글톤

    레이트 리밋 카운터와 사용자 잠금은 요청 간에 공유되어야 하므로 Singleton.
    DB 세션은 요청마다 deps.get_db 로 주입한다.
    """

    config = providers.DependenciesContainer()

    actor_locks = providers.Singleton(ActorLockRegistry)
    rate_limiter = providers.Singleton(build_rate_limiter, settings=config.config)
    lockout_tracker = providers.Singleton(build_lockout_tracker, settings=config.config)
    identity_service = providers.Singleton(IdentityService, settings=config.config)


class Container(containers.DeclarativeContainer):
    """Application container."""

    config = providers.Container(ConfigModule)
    infrastructure = providers.Container(InfrastructureModule, config=config)
