from typing import Optional

from fastapi import FastAPI, Request
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .auth.router import router as auth_router
from .auth.security import GuardRedirect, Outcome
from .auth.session import SessionStore
from .backend.service import BackendFactory
from .backend.supabase_backend import SupabaseBackendFactory
from .config import settings
from .logging import RequestIdMiddleware, setup_logging, structlog
from .routes.cashflow import router as cashflow_router
from .routes.client_view import router as client_view_router
from .routes.team import router as team_router
from .routes.ui import back_to, render_loading
from .routes.ui import router as ui_router
from .routes.workflow import router as workflow_router


def create_app(backend_factory: Optional[BackendFactory] = None) -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    logger = structlog.get_logger(__name__)

    app.state.session_store = SessionStore(backend_factory or SupabaseBackendFactory())

    # Middlewares
    app.add_middleware(RequestIdMiddleware)

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Session cookie written by endpoints and dependencies through request.state
    @app.middleware("http")
    async def session_cookie(request: Request, call_next):
        response = await call_next(request)
        token = getattr(request.state, "session_cookie", None)
        if token:
            response.set_cookie(
                settings.session_cookie_name,
                token,
                max_age=settings.session_ttl_seconds,
                httponly=True,
                secure=settings.session_cookie_secure,
                samesite="lax",
            )
        elif token is not None:
            response.delete_cookie(settings.session_cookie_name)
        return response

    @app.exception_handler(GuardRedirect)
    async def guard_redirect(request: Request, exc: GuardRedirect):
        nav = exc.navigation
        if nav.outcome == Outcome.LOADING:
            return render_loading(request)
        logger.info("navigation_redirected", location=nav.location)
        return back_to(nav.location)

    # Routers
    app.include_router(auth_router)
    app.include_router(ui_router)
    app.include_router(workflow_router)
    app.include_router(cashflow_router)
    app.include_router(team_router)
    app.include_router(client_view_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    logger.info("app_created", environment=settings.environment)
    return app


app = create_app()
