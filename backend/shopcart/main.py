from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shopcart.api.health import router as health_router
from shopcart.api.routes_cart import router as cart_router
from shopcart.api.routes_order import router as order_router
from shopcart.config import settings
from shopcart.db import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup; RESET_DB=1 drops and recreates tables
    init_db(reset=settings.RESET_DB)
    yield


app = FastAPI(title="Shopcart - Cart & Coupon Service", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(cart_router, tags=["cart"])

app.include_router(order_router, tags=["orders"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("shopcart.main:app", host=settings.APP_HOST, port=settings.APP_PORT)
