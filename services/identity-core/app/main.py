"""FastAPI application wiring for the identity core."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .delivery.queue import BoundedDeliveryQueue
from .delivery.redis_queue import RedisDeliveryQueue
from .delivery.worker import NotificationDeliveryWorker
from .domain.fanout import BroadcastService
from .domain.service import AccountService
from .repository import AccountRepository, BroadcastRepository, NotificationRepository
from .security.federation import FederatedTokenVerifier
from .security.passwords import PasswordHasher

logger = logging.getLogger(__name__)

settings = get_settings()


def build_delivery_queue(settings: Settings) -> BoundedDeliveryQueue | RedisDeliveryQueue:
    """Instantiate the configured delivery queue backend, preferring Redis when available."""
    if settings.delivery_queue_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("delivery queue configured for redis backend at %s", settings.redis_url)
            return RedisDeliveryQueue(client, capacity=settings.delivery_queue_capacity)
        except (redis.RedisError, ValueError) as exc:
            logger.warning("redis delivery queue unavailable, falling back to in-memory: %s", exc)

    logger.info("delivery queue using in-memory backend")
    return BoundedDeliveryQueue(settings.delivery_queue_capacity)


def build_verifier(settings: Settings) -> FederatedTokenVerifier | None:
    if not settings.federation_shared_secret and not settings.federation_jwks_url:
        logger.info("federated sign-in disabled")
        return None
    return FederatedTokenVerifier(
        issuer=settings.federation_issuer,
        audience=settings.federation_audience,
        jwks_url=settings.federation_jwks_url,
        shared_secret=settings.federation_shared_secret,
        timeout_seconds=settings.federation_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, queue, worker, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    accounts = AccountRepository(pool)
    queue = build_delivery_queue(settings)
    worker = NotificationDeliveryWorker(
        queue,
        NotificationRepository(pool),
        batch_size=settings.delivery_batch_size,
        poll_interval_seconds=settings.delivery_poll_interval_seconds,
    )

    app.state.pool = pool
    app.state.account_service = AccountService(
        accounts,
        PasswordHasher(settings.bcrypt_rounds),
        initial_admins=settings.initial_admins,
        verifier=build_verifier(settings),
    )
    app.state.broadcast_service = BroadcastService(BroadcastRepository(pool), accounts, queue)
    worker.start()
    try:
        yield
    finally:
        worker.stop()
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for local frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
