"""
Vibe Coding Tracker API

A FastAPI application that tracks the activity of GitHub repositories
registered by community members, keeps their progress and streaks, and
reminds them when their repositories go quiet.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.cache import OAuthStateManager, UserCache
from app.core.config import get_settings, logger
from app.core.database import close_mongo_connection, connect_to_mongo, create_indexes, db, get_database
from app.core.security import TokenCipher
from app.middleware import RateLimitHeadersMiddleware, SecurityHeadersMiddleware, limiter
from app.routes import admin_router, auth_router, repositories_router, users_router
from app.services.github import GitHubRateLimiter, GitHubService
from app.services.notification import NotificationDispatcher
from app.services.scheduler import DailyCheckScheduler

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the long-lived components once, keeps them on app.state and
    starts the repository scheduler; tears everything down on shutdown.
    """
    logger.info(f"Starting {settings.app_name}...")

    try:
        await connect_to_mongo()
        database = await get_database()

        try:
            await create_indexes(database)
            logger.info("Database indexes created successfully")
        except Exception as e:
            logger.warning(f"Index creation warning (may already exist): {str(e)}")

        app.state.github_service = GitHubService(
            settings, rate_limiter=GitHubRateLimiter(settings.github_rate_limit_per_hour)
        )
        app.state.notifications = NotificationDispatcher.from_settings(settings)
        app.state.token_cipher = TokenCipher(settings.token_encryption_key)
        app.state.user_cache = UserCache(ttl=settings.user_cache_ttl_seconds)
        app.state.state_manager = OAuthStateManager()
        app.state.scheduler = DailyCheckScheduler(
            database,
            app.state.github_service,
            app.state.notifications,
            app.state.token_cipher,
            settings=settings,
            user_cache=app.state.user_cache,
        )

        if settings.scheduler_enabled:
            app.state.scheduler.start()
        else:
            logger.info("Repository scheduler disabled")

        logger.info("Application startup complete")

    except Exception as e:
        logger.error(f"Startup failed: {str(e)}")
        raise

    yield

    logger.info(f"Shutting down {settings.app_name}...")

    try:
        await app.state.scheduler.stop()
        await app.state.github_service.close()
        await app.state.notifications.close()
        await app.state.user_cache.close()
        await app.state.state_manager.close()
        await close_mongo_connection()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.error(f"Shutdown error: {str(e)}")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Community tracker for GitHub repository activity",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
    expose_headers=[
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "X-Request-ID",
    ],
)

app.add_middleware(RateLimitHeadersMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

# Register limiter with app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include API routers
app.include_router(auth_router, prefix=settings.api_v1_prefix)
app.include_router(repositories_router, prefix=settings.api_v1_prefix)
app.include_router(users_router, prefix=settings.api_v1_prefix)
app.include_router(admin_router, prefix=settings.api_v1_prefix)


@app.get("/", tags=["Root"])
@limiter.limit("20/minute")
async def root(request: Request) -> dict:
    """
    Root endpoint with API information.

    Returns:
        dict: API metadata and available endpoints
    """
    return {
        "message": settings.app_name,
        "version": settings.app_version,
        "features": [
            "GitHub OAuth Authentication",
            "Repository Activity Status",
            "Progress, Streaks and Levels",
            "Viber of the Week",
            "Email and Telegram Notifications",
        ],
        "endpoints": {
            "docs": "/docs",
            "redoc": "/redoc",
            "health": "/health",
            "api": settings.api_v1_prefix,
        },
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request) -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Database connectivity and scheduler state
    """
    try:
        if db.client:
            await db.client.admin.command("ping")
            db_status = "healthy"
        else:
            db_status = "disconnected"
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        db_status = "unhealthy"

    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "version": settings.app_version,
        "database": db_status,
        "scheduler": "running" if scheduler is not None and scheduler.is_running else "stopped",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
