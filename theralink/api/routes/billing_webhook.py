import logging
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from theralink.api.deps import get_billing_provider, get_plan_catalog
from theralink.core.exceptions import VerificationError
from theralink.core.plan_catalog import PlanCatalog
from theralink.db.session import get_db
from theralink.schemas.billing import BillingErrorResponse, WebhookAck
from theralink.services.billing_provider import BillingProvider
from theralink.services.billing_service import ingest_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing Webhook"])


@router.post(
    "/webhook",
    response_model=WebhookAck,
    responses={400: {"model": BillingErrorResponse}, 500: {"model": BillingErrorResponse}},
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
    provider: BillingProvider = Depends(get_billing_provider),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """
    Receive Stripe subscription events.

    400 drops the event (bad signature or payload). 500 makes Stripe redeliver
    later, which is safe because handlers never depend on stored state.
    """
    payload = await request.body()

    try:
        event = provider.construct_event(payload, stripe_signature)
    except VerificationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    event_type = event.get("type")
    try:
        # Handlers make blocking Stripe and database calls
        await run_in_threadpool(ingest_event, event, db, provider, catalog)
    except Exception as e:
        logger.error(f"Webhook processing failed: event_type={event_type}, id={event.get('id')}, error={e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": f"Failed to process {event_type}: {e}"})

    return {"received": True}
