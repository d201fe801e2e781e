from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from app.config import get_settings
from app.database import init_db, AsyncSessionLocal
from app.middleware.correlation import CorrelationMiddleware
from app.middleware.rate_limit import limiter
from app.routes import alerts, payments
from app.services.gateway import get_gateway
from app.services.notifications import build_fanout
from app.services.stripe_processor import StripeProcessor
from app.services.webhook_reconciler import WebhookReconciler
from app.utils.logger import logger
from app.utils.metrics import get_snapshot

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials="*" not in allowed_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "stripe-signature"],
)
app.add_middleware(CorrelationMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"request.invalid_body {request.url.path}", extra={"error": str(exc.errors())[:200]})
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


def configure_services(target: FastAPI, session_factory=AsyncSessionLocal) -> None:
    """Build the payment collaborators once and hang them on app.state."""
    processor = StripeProcessor(settings, get_gateway())
    fanout = build_fanout(settings)
    target.state.processor = processor
    target.state.fanout = fanout
    target.state.reconciler = WebhookReconciler(processor, fanout, session_factory, settings)


@app.on_event("startup")
async def startup_event():
    logger.info("Starting payments backend...")
    await init_db()
    configure_services(app)
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set, every webhook will be rejected")
    logger.info(f"Backend ready at http://{settings.backend_host}:{settings.backend_port}")


@app.on_event("shutdown")
async def shutdown_event():
    reconciler = getattr(app.state, "reconciler", None)
    if reconciler is not None:
        await reconciler.drain()


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "ok", "circuits": get_gateway().get_circuit_states()}


@app.get("/metrics")
async def metrics():
    return get_snapshot()


# Register routes
app.include_router(payments.router, tags=["Payments"])
app.include_router(alerts.router, prefix="/email-alerts", tags=["Alerts"])

# Railway deployment - use railway.json startCommand instead
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug
    )
