"""Internal Email Alert Trigger Routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.middleware.auth import require_service_key
from app.routes.deps import get_fanout
from app.schemas.payments import ClientRegisteredRequest
from app.services import outbox
from app.services.alert_triggers import stage_client_registered_alert, stage_no_sale_alerts
from app.utils.logger import get_logger

router = APIRouter(dependencies=[Depends(require_service_key)])
logger = get_logger()


@router.post("/client-registered")
async def client_registered(
    data: ClientRegisteredRequest,
    db: AsyncSession = Depends(get_db),
    fanout=Depends(get_fanout),
):
    outcome, outbox_id = await stage_client_registered_alert(db, data.client_id)
    delivered = False
    if outbox_id:
        delivered = bool(await outbox.deliver_many(db, fanout, [outbox_id]))
    return {"success": True, "outcome": outcome, "delivered": delivered}


@router.post("/no-sale-sweep")
async def no_sale_sweep(
    db: AsyncSession = Depends(get_db),
    fanout=Depends(get_fanout),
):
    staged = await stage_no_sale_alerts(db)
    delivered = await outbox.deliver_many(db, fanout, staged)
    errors = len(staged) - len(delivered)
    if errors:
        logger.warning(f"no_sale.sweep_incomplete failed={errors}")
    return {"success": errors == 0, "alertsQueued": len(staged), "alertsSent": len(delivered)}
