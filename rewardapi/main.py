import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from mangum import Mangum
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

load_dotenv("rewardapi/.env")

from rewardapi import containers  # noqa: E402
from rewardapi.core.exception_handlers import (  # noqa: E402
    handle_base_api_exception,
    handle_http_exception,
    handle_unexpected_error,
    handle_validation_error,
)
from rewardapi.core.exceptions import BaseAPIException  # noqa: E402
from rewardapi.logging_config import setup_logging  # noqa: E402
from rewardapi.routers import health_router, reward_router  # noqa: E402

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    container = containers.Container()
    settings = container.config.config()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    app = FastAPI(title=settings.APP_NAME)
    app.container = container  # type: ignore

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"Request: {request.method} {request.url.path}")
        response = await call_next(request)
        logger.info(f"Response: {response.status_code}")
        return response

    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(health_router.router)
    app.include_router(reward_router.router)
    return app


app = create_app()

handler = Mangum(app)
