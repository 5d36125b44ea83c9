#storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import Unauthorized
from storefront.domain.schemas import (
    CreateCartIn,
    ItemIn,
    QuantityIn,
    CartStatusIn,
    CartOut,
    CartSummaryOut,
)
from storefront.services.cart_service import CartService
from storefront.services.event_publisher import EventPublisher, get_event_publisher
from storefront.services.product_client import ProductClient, get_product_client

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> CartService:
    return CartService(db=db, product_client=product_client, publisher=publisher)


def check_owner(svc: CartService, cart_id: int, caller_id: int | None) -> None:
    # bez naglowka nie sprawdzamy, to robi warstwa auth przed nami
    if caller_id is not None and svc.get_owner_id(cart_id) != caller_id:
        raise Unauthorized("Access to cart denied")


@router.post("/", response_model=CartOut)
def create_cart(payload: CreateCartIn, svc: CartService = Depends(get_service)):
    return svc.create_or_get_active_cart(payload.user_id)


@router.get("/", response_model=CartOut)
def get_active_cart(user_id: int = Query(..., gt=0), svc: CartService = Depends(get_service)):
    return svc.get_active_cart_by_user(user_id)


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: int,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    return svc.get_cart(cart_id)


@router.get("/{cart_id}/summary", response_model=CartSummaryOut)
def get_cart_summary(
    cart_id: int,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    return svc.get_cart_summary(cart_id)


@router.post("/{cart_id}/items", response_model=CartOut)
def add_item(
    cart_id: int,
    payload: ItemIn,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    return svc.add_item(cart_id, payload.product_id, payload.quantity)


@router.put("/{cart_id}/items/{product_id}", response_model=CartOut)
def update_item(
    cart_id: int,
    product_id: int,
    payload: QuantityIn,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    return svc.update_item_quantity(cart_id, product_id, payload.quantity)


@router.delete("/{cart_id}/items/{product_id}", response_model=CartOut)
def remove_item(
    cart_id: int,
    product_id: int,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    return svc.remove_item(cart_id, product_id)


@router.delete("/{cart_id}/items", response_model=CartOut)
def clear_cart(
    cart_id: int,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    return svc.clear_cart(cart_id)


@router.delete("/{cart_id}", status_code=204)
def delete_cart(
    cart_id: int,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    svc.delete_cart(cart_id)
    return Response(status_code=204)


@router.patch("/{cart_id}/status", response_model=CartOut)
def update_status(
    cart_id: int,
    payload: CartStatusIn,
    svc: CartService = Depends(get_service),
):
    return svc.transition_status(cart_id, payload.status)


@router.post("/{cart_id}/checkout", response_model=CartOut)
def start_checkout(
    cart_id: int,
    caller_id: int | None = Header(None, alias="X-User-Id"),
    svc: CartService = Depends(get_service),
):
    check_owner(svc, cart_id, caller_id)
    return svc.start_checkout(cart_id)
