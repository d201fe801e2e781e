"""Job Posting Payment Routes"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.middleware.rate_limit import limiter, payment_limit
from app.routes.deps import get_processor, get_reconciler
from app.schemas.payments import CreatePaymentIntentRequest
from app.services.errors import InvalidSignature, PaymentError, UpstreamError
from app.services.payment_intents import create_or_update_job_payment
from app.services.pricing import JOB_PRICING
from app.utils.logger import get_logger

router = APIRouter()
logger = get_logger()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, stripe-signature",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=CORS_HEADERS)


def _payment_error(exc: PaymentError) -> JSONResponse:
    # Upstream details stay in the logs
    message = exc.public_message if isinstance(exc, UpstreamError) else exc.detail
    return _error(exc.status_code, message)


@router.get("/pricing")
async def get_pricing():
    return {"pricing": {key: tier.to_dict() for key, tier in JOB_PRICING.items()}}


@router.options("/create-payment-intent")
@router.options("/stripe-webhook")
async def preflight():
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@router.post("/create-payment-intent")
@limiter.limit(payment_limit)
async def create_payment_intent(
    request: Request,
    data: CreatePaymentIntentRequest,
    db: AsyncSession = Depends(get_db),
    processor=Depends(get_processor),
):
    try:
        result = await create_or_update_job_payment(
            db,
            processor,
            job_post_data=data.job_post_data,
            company_data=data.company_data,
            client_id=data.client_id,
            existing_job_id=data.existing_job_id,
        )
    except PaymentError as exc:
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            f"payment_intent.rejected {type(exc).__name__}: {exc}",
            extra={"client_id": data.client_id, "job_post_id": data.existing_job_id, "status": exc.status_code},
        )
        return _payment_error(exc)
    except Exception:
        logger.exception("payment_intent.unexpected_error", extra={"client_id": data.client_id})
        return _error(500, "Internal server error")

    return JSONResponse(content=result, headers=CORS_HEADERS)


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    reconciler=Depends(get_reconciler),
):
    raw_body = await request.body()
    logger.info(
        f"webhook.received length={len(raw_body)} signature_present={bool(stripe_signature)}"
    )

    try:
        result = await reconciler.handle_webhook_event(db, raw_body, stripe_signature)
    except InvalidSignature as exc:
        logger.warning(
            f"webhook.signature_invalid {exc}",
            extra={"client_ip": request.client.host if request.client else ""},
        )
        return _error(400, exc.detail)
    except PaymentError as exc:
        logger.warning(f"webhook.rejected {type(exc).__name__}: {exc}")
        return _error(exc.status_code, exc.detail)
    except Exception:
        logger.exception("webhook.unexpected_error")
        return _error(500, "Internal server error")

    return JSONResponse(content=result, headers=CORS_HEADERS)
