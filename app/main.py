import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db
from .routers import analytics as analytics_router
from .routers import auth as auth_router
from .routers import budgets as budgets_router
from .routers import categories as categories_router
from .routers import expenses as expenses_router
from .routers import goals as goals_router
from .routers import insights as insights_router
from .routers import recurring as recurring_router
from .routers import reports as reports_router
from .routers import settings as settings_router
from .routers import splits as splits_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def create_app() -> FastAPI:
    app = FastAPI(title="Finance Tracker – Backend", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def on_startup():
        init_db()

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.environment}

    app.include_router(auth_router.router)
    app.include_router(categories_router.router)
    app.include_router(expenses_router.router)
    app.include_router(budgets_router.router)
    app.include_router(recurring_router.router)
    app.include_router(goals_router.router)
    app.include_router(splits_router.router)
    app.include_router(analytics_router.router)
    app.include_router(insights_router.router)
    app.include_router(reports_router.router)
    app.include_router(settings_router.router)

    return app


app = create_app()
