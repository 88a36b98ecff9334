import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .db.monitoring import pool_snapshot
from .db.session import get_engine
from .logging_config import configure_logging
from .routes import router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Curriculum Scheduler", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)

settings_snapshot = get_settings()
logger.info("Scheduler starting with content service URL: %s", settings_snapshot.content_service_url or "<unset>")
logger.info("Default organization timezone: %s", settings_snapshot.default_timezone)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "timezone": settings.default_timezone}


@app.get("/healthz/database")
def database_health() -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ok", "pool": pool_snapshot(engine)}
