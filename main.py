# main.py
import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from database import connect_to_mongo, ensure_indexes, get_database
from errors import (
    MarketplaceError, ValidationError, NotFoundError, AuthorizationError,
    ConflictError, StateError, CapacityError, InsufficientFundsError
)
from routes.hospitals import router as hospital_router
from routes.products import router as product_router
from routes.offers import router as offer_router
from routes.shop import router as shop_router
from routes.orders import router as order_router
from routes.admin_orders import router as admin_order_router
from routes.wallet import router as wallet_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await connect_to_mongo()
        await ensure_indexes(get_database())
        logger.info("Application startup completed successfully.")
    except Exception as e:
        logger.error(f"Error during startup: {e}")
        raise
    try:
        yield
    finally:
        logger.info("Shutting down application...")

app = FastAPI(title="Medical Marketplace Backend", version="1.0", lifespan=lifespan)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Router includes
app.include_router(hospital_router, tags=["Hospitals"])
app.include_router(product_router, prefix="/products", tags=["Products"])
app.include_router(offer_router, prefix="/offers", tags=["Offers"])
app.include_router(shop_router, prefix="/shop", tags=["Shop"])
app.include_router(order_router, prefix="/shop/orders", tags=["Orders"])
app.include_router(admin_order_router, prefix="/admin/orders", tags=["Admin Orders"])
app.include_router(wallet_router, prefix="/wallet", tags=["Wallet"])

# Map domain exceptions to HTTP status codes
ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    AuthorizationError: 403,
    ConflictError: 409,
    StateError: 409,
    CapacityError: 409,
    InsufficientFundsError: 402,
}

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error(f"Unmapped marketplace error on {request.method} {request.url.path}: {exc}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())

@app.get("/")
async def health_check():
    return {"status": "running"}

@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Incoming request: {request.method} {request.url}")
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Unhandled error: {e}", exc_info=True)
        raise e
    return response
