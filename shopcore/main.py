# shopcore/main.py
from fastapi import FastAPI
import uvicorn

from shopcore import __version__
from shopcore.api.errors import register_error_handlers
from shopcore.api.routers import carts, health, orders
from shopcore.data.database import Base, engine
from shopcore.utils.logging import configure_logging, get_logger

#models must be registered on Base.metadata before create_all
from shopcore.data import models  # noqa: F401

logger = get_logger(__name__)


def init_db(bind=engine) -> None:
    logger.info(f"Creating tables: {sorted(Base.metadata.tables)}")
    try:
        Base.metadata.create_all(bind=bind)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise


def create_app(create_tables: bool = True) -> FastAPI:
    configure_logging()
    if create_tables:
        init_db()

    app = FastAPI(
        title="Shopcore",
        version=__version__,
    )
    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
