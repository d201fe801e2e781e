"""
Payment intent initiator.

Creates (or re-opens) a job post in pending_payment and opens a Stripe
PaymentIntent for the authoritative tier price.

The three writes are separate commits:
    1. job post upsert          -> failure aborts with PersistenceError
    2. job post intent id patch -> failure logged, request still succeeds
    3. transaction insert       -> failure logged, request still succeeds
An intent created before a failed write 2/3 is not rolled back at Stripe; the
webhook still finds the transaction or job by intent id once either exists.
"""
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.client import Client
from app.models.job_post import JobPost
from app.models.payment_transaction import PaymentTransaction
from app.schemas.payments import CompanyData, JobPostData
from app.services.errors import (
    ClientNotFound,
    InvalidTransition,
    JobPostNotFound,
    MissingFields,
    PersistenceError,
)
from app.services.pricing import PriceTier, get_price_tier
from app.utils.logger import logger

CURRENCY = "usd"


def _job_fields(job: JobPostData, company: Optional[CompanyData], tier: PriceTier) -> Dict[str, Any]:
    company = company or CompanyData()
    return {
        "title": job.title,
        "job_type": job.type,
        "classification": tier.classification,
        "location": job.location,
        "salary": job.salary,
        "description": job.description,
        "requirements": job.requirements,
        "benefits": job.benefits,
        "company_name": company.name or "",
        "company_address": company.address or "",
        "company_phone": company.phone or "",
        "company_email": company.email or "",
        "company_website": company.website or "",
        "company_description": company.description or "",
        "status": "pending_payment",
        "payment_status": "pending",
        "amount_cents": tier.price_cents,
        "stripe_price_id": tier.stripe_price_id,
    }


async def _upsert_job_post(
    db: AsyncSession,
    fields: Dict[str, Any],
    client_id: str,
    existing_job_id: Optional[str],
) -> str:
    client = await db.get(Client, client_id)
    if client is None:
        raise ClientNotFound()

    if existing_job_id:
        # Ownership re-check: the row must belong to the requesting client
        result = await db.execute(
            select(JobPost).where(JobPost.id == existing_job_id, JobPost.client_id == client_id)
        )
        job_post = result.scalar_one_or_none()
        if job_post is None:
            raise JobPostNotFound()
        if job_post.status == "posted":
            raise InvalidTransition("job_post", job_post.status, "checkout")
        for field, value in fields.items():
            setattr(job_post, field, value)
    else:
        job_post = JobPost(client_id=client_id, **fields)
        db.add(job_post)

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("job_post.upsert_failed", extra={"client_id": client_id, "error": str(exc)[:200]})
        raise PersistenceError(
            "Failed to update job post" if existing_job_id else "Failed to create job post"
        ) from exc
    return job_post.id


async def create_or_update_job_payment(
    db: AsyncSession,
    processor,
    job_post_data: Optional[JobPostData],
    company_data: Optional[CompanyData],
    client_id: Optional[str],
    existing_job_id: Optional[str] = None,
) -> Dict[str, str]:
    """
    Returns {"clientSecret", "jobPostId", "paymentIntentId"}.

    Raises MissingFields, InvalidClassification, ClientNotFound,
    JobPostNotFound, InvalidTransition, PersistenceError or ProcessorError.
    """
    if job_post_data is None or not client_id:
        raise MissingFields()

    tier = get_price_tier(job_post_data.classification)
    fields = _job_fields(job_post_data, company_data, tier)

    job_post_id = await _upsert_job_post(db, fields, client_id, existing_job_id)

    intent = await processor.create_payment_intent(
        amount_cents=tier.price_cents,
        currency=CURRENCY,
        metadata={
            "job_post_id": job_post_id,
            "client_id": client_id,
            "classification": tier.classification,
        },
        description=f"Job Posting: {job_post_data.title} ({tier.classification})",
    )
    logger.info(
        "payment_intent.created",
        extra={
            "payment_intent_id": intent.id,
            "job_post_id": job_post_id,
            "classification": tier.classification,
            "amount_cents": tier.price_cents,
        },
    )

    try:
        await db.execute(
            update(JobPost)
            .where(JobPost.id == job_post_id)
            .values(stripe_payment_intent_id=intent.id)
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "job_post.intent_patch_failed",
            extra={"job_post_id": job_post_id, "payment_intent_id": intent.id, "error": str(exc)[:200]},
        )

    try:
        db.add(PaymentTransaction(
            job_post_id=job_post_id,
            stripe_payment_intent_id=intent.id,
            amount_cents=tier.price_cents,
            currency=CURRENCY,
            status="pending",
        ))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "payment_transaction.insert_failed",
            extra={"job_post_id": job_post_id, "payment_intent_id": intent.id, "error": str(exc)[:200]},
        )

    return {
        "clientSecret": intent.client_secret,
        "jobPostId": job_post_id,
        "paymentIntentId": intent.id,
    }
