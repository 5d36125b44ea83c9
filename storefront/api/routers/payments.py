# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import InvalidSignature
from storefront.domain.schemas import CheckoutSessionIn, CheckoutSessionOut, PaymentResultOut
from storefront.services.event_publisher import EventPublisher, get_event_publisher
from storefront.services.payment_service import PaymentService
from storefront.services.product_client import ProductClient, get_product_client
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> PaymentService:
    return PaymentService(db=db, product_client=product_client, publisher=publisher)


@router.post("/checkout", response_model=CheckoutSessionOut)
def create_checkout_session(payload: CheckoutSessionIn, svc: PaymentService = Depends(get_service)):
    return svc.create_checkout_session(payload.cart_id, payload.user_id, payload.currency.lower())


@router.get("/success", response_model=PaymentResultOut)
def payment_success(session_id: str | None = None):
    return {"success": True, "message": "Payment successful", "payment_id": session_id}


@router.get("/cancel", response_model=PaymentResultOut)
def payment_cancel():
    return {"success": False, "message": "Payment cancelled", "payment_id": None}


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    svc: PaymentService = Depends(get_service),
):
    # surowe bajty, podpis liczony jest po nich
    payload = await request.body()
    try:
        result = await run_in_threadpool(svc.handle_webhook_event, payload, stripe_signature)
    except InvalidSignature as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    except Exception as e:
        logger.exception(f"Webhook processing failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
    return {"message": result}
