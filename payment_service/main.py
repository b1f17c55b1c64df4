#!/usr/bin/env python3
"""
Payment Service
Payment intake with cached merchant validation and a durable ledger
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from common.settings import Settings, settings as default_settings
from common.secrets import SecretResolver, SecretNotFound, resolve_connection_config
from common.redis_client import RedisClient
from common.error_handling import add_error_handlers
from common.tracing import payment_tracer, tracing_middleware
from payment_service.db import build_engine, build_session_factory
from payment_service.errors import PersistenceError
from payment_service.intake import PaymentService
from payment_service.ledger import PaymentLedger
from payment_service.merchant_cache import MerchantValidationCache, MerchantValidator, MerchantVerifier
from payment_service.schemas import (
    CreatePayment, PaymentCreated, PaymentOut, PaymentList,
    DailyStatsOut, StatsResponse, HealthResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service

def _now() -> datetime:
    return datetime.now(timezone.utc)

@router.get("/")
def root(app_settings: Settings = Depends(get_settings)):
    return {
        "message": f"Welcome to {app_settings.service_name}",
        "service": app_settings.service_name,
        "version": app_settings.service_version,
        "status": "Running",
        "endpoints": {
            "health": "/health",
            "info": "/api/info",
            "payments": "/api/payments",
            "stats": "/api/stats",
        },
    }

@router.get("/health")
def health(request: Request):
    state = request.app.state

    database_ok = state.ledger.ping()
    services = {"database": "Connected" if database_ok else "Error"}

    if state.merchant_cache is None:
        services["cache"] = "Not configured"
    else:
        services["cache"] = "Connected" if state.merchant_cache.ping() else "Not connected"
    services["secrets"] = state.secrets_source

    body = HealthResponse(
        status="OK" if database_ok else "ERROR",
        timestamp=_now(),
        uptime=round(time.monotonic() - state.started_at, 3),
        version=state.settings.service_version,
        services=services,
    )
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content=body.model_dump(mode="json", by_alias=True),
    )

@router.get("/api/info")
def info(app_settings: Settings = Depends(get_settings)):
    return {
        "service": app_settings.service_name,
        "version": app_settings.service_version,
        "environment": app_settings.environment,
        "timestamp": _now().isoformat(),
    }

@router.post("/api/payments", status_code=201, response_model=PaymentCreated)
def create_payment(payload: CreatePayment, service: PaymentService = Depends(get_payment_service)):
    result = service.process_payment(payload.amount, payload.currency, payload.merchant_id)
    return PaymentCreated(
        payment_id=result.payment_id,
        status=result.status.value,
        amount=result.amount,
        currency=result.currency,
        merchant_id=result.merchant_id,
        processed_at=result.processed_at,
        processing_time=f"{result.processing_time_ms}ms",
    )

@router.get("/api/payments", response_model=PaymentList)
def list_payments(
    limit: Optional[int] = Query(None, description="Maximum number of payments to return"),
    service: PaymentService = Depends(get_payment_service),
    app_settings: Settings = Depends(get_settings),
):
    if limit is None:
        limit = app_settings.recent_payments_limit
    limit = min(limit, app_settings.recent_payments_limit)
    payments = service.list_recent_payments(limit)
    return PaymentList(
        payments=[
            PaymentOut(
                payment_id=p.id,
                amount=p.amount,
                currency=p.currency,
                merchant_id=p.merchant_id,
                status=p.status.value,
                created_at=p.created_at,
            )
            for p in payments
        ],
        count=len(payments),
        timestamp=_now(),
    )

@router.get("/api/stats", response_model=StatsResponse)
def stats(service: PaymentService = Depends(get_payment_service)):
    daily = service.compute_daily_stats()
    return StatsResponse(
        stats=DailyStatsOut(
            total_payments=daily.total_payments,
            total_amount=daily.total_amount,
            average_amount=daily.average_amount,
            unique_merchants=daily.unique_merchants,
        ),
        timestamp=_now(),
    )

def create_app(
    app_settings: Optional[Settings] = None,
    secret_resolver: Optional[SecretResolver] = None,
    engine: Optional[Engine] = None,
    redis_client: Optional[RedisClient] = None,
    verifier: Optional[MerchantVerifier] = None,
) -> FastAPI:
    """Build the application; connections are created in the lifespan, never at import"""
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=app_settings.log_level.upper())
        logger.info(f"🚀 Starting {app_settings.service_name}...")
        logger.info(f"📊 Environment: {app_settings.environment}")

        db_engine, cache_client = engine, redis_client
        secrets_source = "Injected"
        if db_engine is None:
            try:
                config = resolve_connection_config(app_settings, secret_resolver)
            except SecretNotFound as e:
                logger.error(f"❌ Cannot resolve connection secrets, stopping: {e}")
                raise
            secrets_source = "Resolved" if config.from_secrets else "Defaults"
            db_engine = build_engine(config.database_url, app_settings)
            logger.info(f"✅ SQL configured: {db_engine.url.host}/{db_engine.url.database}")
            if cache_client is None and config.redis_url:
                cache_client = RedisClient(config.redis_url, app_settings.cache_timeout_seconds)
                logger.info("✅ Redis client configured")

        ledger = PaymentLedger(db_engine, build_session_factory(db_engine))
        merchant_cache = None
        if cache_client is not None:
            merchant_cache = MerchantValidationCache(cache_client, app_settings.merchant_cache_ttl_seconds)

        app.state.settings = app_settings
        app.state.started_at = time.monotonic()
        app.state.secrets_source = secrets_source
        app.state.ledger = ledger
        app.state.merchant_cache = merchant_cache
        app.state.payment_service = PaymentService(ledger, MerchantValidator(merchant_cache, verifier))

        try:
            ledger.ensure_schema()
        except PersistenceError as e:
            logger.error(f"❌ Database initialization failed: {e.original_error}")

        logger.info(f"🎉 {app_settings.service_name} ready")
        yield

        logger.info("🛑 Shutting down...")
        if cache_client is not None:
            try:
                cache_client.close()
            except Exception as e:
                logger.warning(f"⚠️ Error closing Redis client: {e}")
        if engine is None:
            db_engine.dispose()
        logger.info("✅ Connections closed")

    app = FastAPI(title=app_settings.service_name, version=app_settings.service_version, lifespan=lifespan)

    @app.middleware("http")
    async def add_tracing(request: Request, call_next):
        return await tracing_middleware(request, call_next, payment_tracer)

    add_error_handlers(app)
    app.include_router(router)
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
