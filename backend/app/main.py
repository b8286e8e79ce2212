from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.app.api.errors import register_error_handlers
from backend.app.api.v1.router import router as v1_router
from backend.app.core.config import settings
from backend.app.core.logging_config import configure_logging
from backend.app.db.session import SessionLocal
from backend.services.sweeper import TimeoutSweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)

    sweeper = TimeoutSweeper(SessionLocal)
    app.state.sweeper = sweeper
    if settings.SWEEPER_ENABLED:
        sweeper.start()

    yield

    await sweeper.stop()


app = FastAPI(title="Pharmacy OMS", version="0.1.0", lifespan=lifespan)
register_error_handlers(app)
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health():
    return {"status": "ok"}
