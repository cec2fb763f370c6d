# Application entrypoint: configures logging, middleware, startup routines, and API routers.
import logging
import os

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from .db import Base, engine, is_sqlite
from .payments import router as payments_router
from .routes.auth import router as auth_router
from .routes.bookings import router as bookings_router
from .routes.checkout import router as checkout_router
from .routes.dashboard import router as dashboard_router
from .routes.ledger import router as ledger_router
from .routes.notifications import router as notifications_router
from .routes.profiles import router as profiles_router
from .routes.rooms import router as rooms_router
from .routes.tenants import router as tenants_router

logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("boardinghouse")
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


# Parse CORS origins from a comma-separated env var.
# The payment endpoint is called cross-origin by the storefront, so '*' is the default.
# '*' cannot be combined with credentials, so credentials are only allowed for explicit lists.
def _parse_cors_origins(env_value: str | None) -> tuple[list[str], bool]:
    if not env_value:
        return ["*"], False

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    if not origins or "*" in origins:
        return ["*"], False
    return origins, True


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose accepted preflights are an empty 204 instead of 200 "OK"."""

    _BODY_HEADERS = ("content-length", "content-type")

    def preflight_response(self, request_headers) -> Response:
        response = super().preflight_response(request_headers=request_headers)
        if response.status_code != 200:
            return response
        headers = {k: v for k, v in response.headers.items() if k.lower() not in self._BODY_HEADERS}
        return Response(status_code=204, headers=headers)


app = FastAPI(title="Boarding House API", version="0.1.0")
allow_list, allow_credentials = _parse_cors_origins(os.getenv("CORS_ORIGINS"))

app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=allow_list,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    # For local SQLite, auto-create tables; production DBs rely on Alembic migrations.
    if is_sqlite():
        Base.metadata.create_all(bind=engine)
    logger.info("startup", extra={"cors_origins": allow_list})


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


# Auth, the payment-intent endpoint and the payment return channel carry their full paths
app.include_router(auth_router, prefix="", tags=["auth"])
app.include_router(payments_router, prefix="", tags=["payments"])
app.include_router(checkout_router, prefix="", tags=["checkout"])
app.include_router(rooms_router, prefix="/api/v1", tags=["rooms"])
app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])
app.include_router(tenants_router, prefix="/api/v1", tags=["tenants"])
app.include_router(ledger_router, prefix="/api/v1", tags=["ledger"])
app.include_router(notifications_router, prefix="/api/v1", tags=["notifications"])
app.include_router(profiles_router, prefix="/api/v1", tags=["profiles"])
app.include_router(dashboard_router, prefix="/api/v1", tags=["dashboard"])
