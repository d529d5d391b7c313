# cart_service/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from cart_service.api.errors import register_exception_handlers
from cart_service.api.routers import carts, health, items
from cart_service.data.database import Base, init_db
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


def create_app(init_database: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if init_database:
            logger.info("Initializing database...")
            init_db()
            logger.info(f"Database tables ready: {list(Base.metadata.tables.keys())}")
        yield

    app = FastAPI(
        title="Cart Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(items.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
