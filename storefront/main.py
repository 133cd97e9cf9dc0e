import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront import config
from storefront.auth import router as auth_router
from storefront.database import init_database
from storefront.errors import StorefrontError
from storefront.routes import (
    addresses,
    admin,
    cart,
    checkout,
    health,
    orders,
    payment_methods,
    payments,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Storefront Checkout API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ─────────────────────────────────────────────────────────
@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("Request failed | path=%s | error=%s", request.url.path, exc.message)

    body = {"detail": exc.message}
    if exc.redirect:
        body["redirect"] = exc.redirect
    return JSONResponse(status_code=exc.status_code, content=body)


# ── Health & Auth ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(auth_router)

# ── Customer ───────────────────────────────────────────────────────
app.include_router(addresses.router,        prefix="/api")
app.include_router(payment_methods.router,  prefix="/api")
app.include_router(cart.router,             prefix="/api")
app.include_router(payments.router,         prefix="/api")
app.include_router(orders.router,           prefix="/api")
app.include_router(checkout.router,         prefix="/api")

# ── Admin ──────────────────────────────────────────────────────────
app.include_router(admin.router,            prefix="/api")


@app.on_event("startup")
def startup():
    init_database()
