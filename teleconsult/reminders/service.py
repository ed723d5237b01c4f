from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from teleconsult.core.config import settings as core_settings
from teleconsult.core.logging import configure_logging
from .api import router as reminders_router
from .config import settings


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Consultation Reminder Service")
    app.include_router(reminders_router, prefix=f"{core_settings.API_V1_STR}/reminders", tags=["reminders"])

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()
