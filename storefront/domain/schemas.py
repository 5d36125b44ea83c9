# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime


class ItemIn(BaseModel):
    """Dodanie produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu w katalogu")
    quantity: int = Field(1, gt=0, description="Ilosc (musi byc > 0)")


class QuantityIn(BaseModel):
    quantity: int = Field(..., gt=0, description="Nowa ilosc (musi byc > 0)")


class CreateCartIn(BaseModel):
    user_id: int = Field(..., gt=0, description="ID uzytkownika")


class CartStatusIn(BaseModel):
    status: str = Field(..., description="ACTIVE, CHECKOUT, COMPLETED albo ABANDONED")


class CartItemOut(BaseModel):
    id: int
    product_id: int
    product_name: str | None = None
    product_price: Decimal | None = None
    quantity: int
    subtotal: Decimal
    available: bool = True
    added_at: datetime | None = None


class CartOut(BaseModel):
    cart_id: int
    user_id: int
    status: str
    items: List[CartItemOut]
    total_items: int
    total_price: Decimal
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CartSummaryOut(BaseModel):
    cart_id: int
    status: str
    item_count: int
    total_items: int
    total_price: Decimal


class CheckoutIn(BaseModel):
    """Utworzenie zamowienia z koszyka."""

    cart_id: int = Field(..., gt=0, description="ID koszyka")
    shipping_address: str | None = None
    billing_address: str | None = None
    notes: str | None = None
    payment_method: str = "STRIPE"


class CompleteOrderIn(BaseModel):
    payment_id: str = Field(..., min_length=1, description="Referencja platnosci")


class OrderStatusIn(BaseModel):
    status: str
    notes: str | None = None


class CancelOrderIn(BaseModel):
    reason: str | None = None


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_description: str | None = None
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


class OrderOut(BaseModel):
    id: int
    order_number: str
    user_id: int
    cart_id: int | None = None
    status: str
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    payment_id: str | None = None
    payment_method: str
    shipping_address: str | None = None
    billing_address: str | None = None
    notes: str | None = None
    items: List[OrderItemOut]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderSummaryOut(BaseModel):
    id: int
    order_number: str
    status: str
    total_amount: Decimal
    item_count: int
    created_at: datetime


class OrderHistoryOut(BaseModel):
    orders: List[OrderSummaryOut]
    total_orders: int
    page: int
    page_size: int
    total_pages: int


class CheckoutSessionIn(BaseModel):
    cart_id: int = Field(..., gt=0)
    user_id: int = Field(..., gt=0)
    currency: str = Field("usd", min_length=3, max_length=3)


class CheckoutSessionOut(BaseModel):
    session_id: str
    checkout_url: str | None = None
    amount: Decimal


class PaymentResultOut(BaseModel):
    success: bool
    message: str
    payment_id: str | None = None
