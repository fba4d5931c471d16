# backend/main.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from database import Database
from services.alerts import AlertService
from services.events import EventBus
from services.inventory import StockAdjustmentProcessor
from utils.errors import WarehouseError

from routes.auth import router as auth_router
from routes.users import router as users_router
from routes.products import router as products_router
from routes.warehouses import router as warehouses_router
from routes.inventory import router as inventory_router
from routes.alerts import router as alerts_router
from routes.logs import router as logs_router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        db.open()
        if settings.AUTO_CREATE_TABLES:
            db.create_all()

        events = EventBus()
        app.state.settings = settings
        app.state.database = db
        app.state.events = events
        app.state.stock_processor = StockAdjustmentProcessor(db, events)
        app.state.alert_service = AlertService(db, events)
        logger.info("Warehouse Inventory API started (env=%s)", settings.ENV)
        try:
            yield
        finally:
            db.close()

    app = FastAPI(title="Warehouse Inventory API", version="1.0.0", lifespan=lifespan)

    origins = list(settings.CORS_ORIGINS)
    if settings.CLIENT_URL and settings.CLIENT_URL not in origins:
        origins.append(settings.CLIENT_URL)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WarehouseError)
    async def warehouse_error_handler(request: Request, exc: WarehouseError):
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.as_dict())

    # Router registration
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(products_router)
    app.include_router(warehouses_router)
    app.include_router(inventory_router)
    app.include_router(alerts_router)
    app.include_router(logs_router)

    @app.get("/health", tags=["Health"])
    def health(request: Request):
        timestamp = datetime.now(timezone.utc).isoformat()
        if request.app.state.database.ping():
            return {"status": "healthy", "database": "connected", "timestamp": timestamp}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "timestamp": timestamp},
        )

    return app


app = create_app()
