"""
Storefront API entrypoint.

    uvicorn main:app --reload
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from db.storage import build_storage
from routes import storefront_gateway
from services.storefront import Storefront
from services.storefront_config import get_storefront_settings

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_storefront_settings()
    storefront = Storefront(build_storage(settings.database_url))
    await storefront.startup()
    app.state.storefront = storefront
    logger.info("app.started", extra={"env": settings.env, "durable_storage": bool(settings.database_url)})
    try:
        yield
    finally:
        await storefront.shutdown()


def create_app() -> FastAPI:
    app = FastAPI(title="Thrift Storefront API", lifespan=lifespan)
    app.include_router(storefront_gateway.router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "env": get_storefront_settings().env}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
