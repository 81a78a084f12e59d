"""Application assembly: wire clients into services and services into routes."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import create_admin_router, create_auth_router
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.identity import IdentityResolver
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.service import AuthService
from auth.session import SessionManager
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import AppSecrets
from core.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Long-lived collaborators shared by every request."""

    config: AuthConfig
    auth_service: AuthService
    session_manager: SessionManager
    postgres: PostgresClient | None = None
    valkey: ValkeyClient | None = None

    def close(self) -> None:
        if self.valkey is not None:
            self.valkey.close()
        if self.postgres is not None:
            self.postgres.close()


def build_container(secrets: AppSecrets, config: AuthConfig) -> AppContainer:
    """Open connections and construct services. Raises on any misconfiguration."""
    postgres = PostgresClient(secrets.database_url)
    valkey = None
    try:
        valkey = ValkeyClient(secrets.valkey_url)

        auth_db = AuthDatabase(postgres)
        security_logger = SecurityLogger(postgres)
        session_manager = SessionManager(secrets.session_secret, config, auth_db)

        auth_service = AuthService(
            config=config,
            auth_db=auth_db,
            registrations=RegistrationService(postgres),
            identity_resolver=IdentityResolver(auth_db, security_logger),
            session_manager=session_manager,
            issue_rate_limiter=RateLimiter(
                valkey, "otp_issue",
                config.issue_rate_limit_attempts, config.rate_limit_window_minutes,
            ),
            verify_rate_limiter=RateLimiter(
                valkey, "otp_verify",
                config.verify_rate_limit_attempts, config.rate_limit_window_minutes,
            ),
            email_client=EmailGatewayClient(
                gateway_url=secrets.email_gateway_url,
                api_key=secrets.email_api_key,
                hmac_secret=secrets.email_hmac_secret,
            ),
            security_logger=security_logger,
        )
    except Exception:
        if valkey is not None:
            valkey.close()
        postgres.close()
        raise

    return AppContainer(
        config=config,
        auth_service=auth_service,
        session_manager=session_manager,
        postgres=postgres,
        valkey=valkey,
    )


def create_app(container: AppContainer) -> FastAPI:
    """FastAPI app with middleware, error handlers and auth routes."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application started")
        yield
        container.close()
        logger.info("Application stopped")

    app = FastAPI(title="Event participant auth", lifespan=lifespan)
    app.state.container = container

    # Added last = outermost: request ID is assigned before auth runs.
    app.add_middleware(
        AuthMiddleware,
        session_manager=container.session_manager,
        cookie_name=container.config.session_cookie_name,
    )
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_auth_router(container.auth_service, container.config), prefix="/auth")
    app.include_router(create_admin_router(container.auth_service), prefix="/admin")

    @app.get("/health")
    def health():
        return success_response(status="ok").model_dump(mode="json")

    return app
