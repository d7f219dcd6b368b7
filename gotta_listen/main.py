"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gotta_listen import __version__
from gotta_listen.admin.service import get_admin_service
from gotta_listen.auth.cookies import clear_session_cookies
from gotta_listen.auth.exceptions import (
    NotAuthenticatedError,
    NotAuthorizedError,
    SessionConflictError,
)
from gotta_listen.auth.service import HOME_REDIRECT
from gotta_listen.config import get_settings
from gotta_listen.db.database import close_database, open_database
from gotta_listen.dependencies import CurrentAdmin, CurrentUser, CurrentUserOptional, DbSession

logger = logging.getLogger(__name__)

settings = get_settings()

BASE_DIR = Path(__file__).resolve().parent
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events.

    Args:
        app: FastAPI application instance.
    """
    # Startup
    open_database()
    yield
    # Shutdown
    close_database()


app = FastAPI(
    title=settings.app_name,
    description="Accounts, sessions and moderation for the Gotta Listen music community",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Static files
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")

# Templates with global context
templates = Jinja2Templates(directory=BASE_DIR / "templates")
templates.env.globals["app_name"] = settings.app_name


# Import and include routers
from gotta_listen.admin.router import router as admin_router
from gotta_listen.auth.router import router as auth_router

# API routes
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(admin_router, prefix="/api/admin", tags=["admin"])


def is_api_request(request: Request) -> bool:
    """Whether the request targets the JSON API rather than a page."""
    return request.url.path.startswith("/api/")


@app.middleware("http")
async def clear_stale_session_cookies(request: Request, call_next):
    """Clear session cookies that failed to resolve during the request."""
    response = await call_next(request)
    if getattr(request.state, "clear_session_cookies", False):
        clear_session_cookies(response)
    return response


@app.exception_handler(NotAuthenticatedError)
async def handle_not_authenticated(request: Request, exc: NotAuthenticatedError):
    if is_api_request(request):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Not authenticated"},
        )
    return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)


@app.exception_handler(NotAuthorizedError)
async def handle_not_authorized(request: Request, exc: NotAuthorizedError):
    if is_api_request(request):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": "Admin access required"},
        )
    return RedirectResponse(url=HOME_REDIRECT, status_code=status.HTTP_303_SEE_OTHER)


@app.exception_handler(SQLAlchemyError)
@app.exception_handler(SessionConflictError)
async def handle_storage_error(request: Request, exc: Exception):
    logger.exception(f"Storage error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": GENERIC_ERROR_MESSAGE},
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": GENERIC_ERROR_MESSAGE},
    )


@app.get("/", response_class=HTMLResponse)
def home(request: Request, current_user: CurrentUserOptional):
    """Render the landing page, or send signed-in users to their feed.

    Args:
        request: FastAPI request object.
        current_user: User resolved from the session cookie, if any.

    Returns:
        HTMLResponse or RedirectResponse: Landing page or redirect to feed.
    """
    if current_user:
        return RedirectResponse(url=HOME_REDIRECT, status_code=status.HTTP_302_FOUND)

    return templates.TemplateResponse(
        request,
        "index.html",
        {"title": "Welcome"},
    )


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request, current_user: CurrentUserOptional):
    """Render the login page.

    Args:
        request: FastAPI request object.
        current_user: User resolved from the session cookie, if any.

    Returns:
        HTMLResponse or RedirectResponse: Rendered template or redirect to feed.
    """
    if current_user:
        return RedirectResponse(url=HOME_REDIRECT, status_code=status.HTTP_302_FOUND)

    return templates.TemplateResponse(
        request,
        "auth/login.html",
        {"title": "Login"},
    )


@app.get("/register", response_class=HTMLResponse)
def register_page(request: Request, current_user: CurrentUserOptional):
    """Render the registration page.

    Args:
        request: FastAPI request object.
        current_user: User resolved from the session cookie, if any.

    Returns:
        HTMLResponse or RedirectResponse: Rendered template or redirect to feed.
    """
    if current_user:
        return RedirectResponse(url=HOME_REDIRECT, status_code=status.HTTP_302_FOUND)

    return templates.TemplateResponse(
        request,
        "auth/register.html",
        {"title": "Register"},
    )


@app.get("/feed", response_class=HTMLResponse)
def feed_page(request: Request, current_user: CurrentUser):
    """Render the signed-in home page."""
    return templates.TemplateResponse(
        request,
        "feed.html",
        {"title": "Feed", "current_user": current_user},
    )


@app.get("/settings", response_class=HTMLResponse)
def settings_page(request: Request, current_user: CurrentUser):
    """Render account settings: password change, sign-out everywhere, deletion."""
    return templates.TemplateResponse(
        request,
        "settings.html",
        {"title": "Settings", "current_user": current_user},
    )


@app.get("/admin", response_class=HTMLResponse)
def admin_page(request: Request, db: DbSession, current_user: CurrentAdmin):
    """Render the user administration dashboard.

    Args:
        request: FastAPI request object.
        db: Database session.
        current_user: The authenticated admin.

    Returns:
        HTMLResponse: Rendered template.
    """
    users = get_admin_service(db, current_user).list_users()
    return templates.TemplateResponse(
        request,
        "admin/users.html",
        {"title": "Users", "current_user": current_user, "users": users},
    )


@app.get("/health")
def health_check(db: DbSession):
    """Health check endpoint for Docker/Kubernetes.

    Args:
        db: Database session.

    Returns:
        JSONResponse: Health status; 503 when the database is unreachable.
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "app": settings.app_name},
        )
    return {"status": "healthy", "app": settings.app_name}
