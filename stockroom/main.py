import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockroom.api import auth, categories, movements, products, reports
from stockroom.config import settings
from stockroom.database import init_db
from stockroom.errors import StockError
from stockroom.services.events import ProductEvents
from stockroom.services.webhook_service import configured_urls, send_webhook_sync

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    unsubscribe = None
    if configured_urls():
        unsubscribe = app.state.events.subscribe(send_webhook_sync)
        logger.info("Product change webhooks enabled for %d URL(s)", len(configured_urls()))
    yield
    if unsubscribe:
        unsubscribe()


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Product registry, stock movements ledger, alerts and monthly reports",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.events = ProductEvents()

    @app.exception_handler(StockError)
    async def stock_error_handler(request: Request, exc: StockError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Return JSON for unhandled exceptions so clients can parse the error."""
        logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(products.router, prefix="/api/v1")
    app.include_router(movements.router, prefix="/api/v1")
    app.include_router(categories.router, prefix="/api/v1")
    app.include_router(reports.router, prefix="/api/v1")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
