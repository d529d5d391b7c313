# cart_service/domain/schemas.py
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cart_service.domain.cart import CartItemStatus, CartStatus


def _load_metadata(value):
    # metadata trzymamy jako nieprzezroczysty string JSON
    if value is None or isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return {"raw": value}
    return parsed if isinstance(parsed, dict) else {"raw": parsed}


class CartDetailsIn(BaseModel):
    """Pola opisowe koszyka (wspolne dla tworzenia i aktualizacji)."""

    customer_name: str | None = Field(None, max_length=100)
    customer_email: str | None = Field(None, max_length=255)
    discount_code: str | None = Field(None, max_length=50)
    discount_amount: Decimal | None = Field(None, ge=0)
    special_instructions: str | None = None
    delivery_type: str | None = Field(None, max_length=20, description="PICKUP, DELIVERY")
    delivery_address: str | None = None
    metadata: dict[str, Any] | None = None

    def to_details(self) -> dict[str, Any]:
        details = self.model_dump(exclude_none=True)
        if "metadata" in details:
            details["metadata"] = json.dumps(details["metadata"])
        return details


class CreateCartIn(CartDetailsIn):
    """Schema dla tworzenia koszyka: user_id dla zalogowanego, session_id dla goscia."""

    user_id: str | None = Field(None, max_length=36)
    session_id: str | None = Field(None, max_length=255)
    currency_code: str | None = Field(None, min_length=3, max_length=3)
    source: str | None = Field(None, max_length=50, description="WEB, MOBILE, API")
    device_type: str | None = Field(None, max_length=20)
    user_agent: str | None = None

    def to_details(self) -> dict[str, Any]:
        details = super().to_details()
        details.pop("user_id", None)
        details.pop("session_id", None)
        return details


class CartUpdateIn(CartDetailsIn):
    pass


class AttachUserIn(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)


class AddItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka. Limity ilosci sprawdza serwis."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., description="Ilosc produktu")
    unit_price_override: Decimal | None = Field(None, ge=0)
    special_instructions: str | None = None
    added_from: str | None = Field(None, max_length=50, description="PRODUCT_PAGE, SEARCH, ...")
    metadata: dict[str, Any] | None = None


class UpdateItemIn(BaseModel):
    quantity: int
    special_instructions: str | None = None
    metadata: dict[str, Any] | None = None


class MergeCartsIn(BaseModel):
    source_cart_id: str
    target_cart_id: str
    delete_source_cart: bool = True
    handle_duplicates: bool = True


class CheckoutIn(BaseModel):
    """Dane klienta, dostawy i platnosci przekazywane do order-service."""

    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_email: str = Field(..., min_length=3, max_length=255)
    customer_phone: str | None = Field(None, max_length=20)
    delivery_type: str = Field(..., min_length=1, max_length=20)
    delivery_address: str | None = None
    delivery_date: datetime | None = None
    special_instructions: str | None = None
    discount_code: str | None = Field(None, max_length=50)
    payment_method: str = Field(..., min_length=1, max_length=20, description="CASH, CARD, DIGITAL_WALLET")
    card_last_four: str | None = Field(None, max_length=4)
    card_brand: str | None = Field(None, max_length=20)
    card_type: str | None = Field(None, max_length=20)
    digital_wallet_provider: str | None = Field(None, max_length=50)
    bank_name: str | None = Field(None, max_length=100)
    payment_notes: str | None = None
    metadata: dict[str, Any] | None = None


class CartItemOut(BaseModel):
    """Schema dla pozycji koszyka (response)."""

    id: str
    product_id: str
    product_name: str
    product_sku: str | None = None
    product_category: str | None = None
    product_description: str | None = None
    product_image_url: str | None = None
    preparation_time_minutes: int | None = None
    quantity: int
    unit_price: Decimal
    original_unit_price: Decimal
    total_price: Decimal
    price_changed: bool
    price_change_amount: Decimal
    status: CartItemStatus
    currency_code: str
    special_instructions: str | None = None
    is_available: bool
    stock_quantity: int | None = None
    availability_message: str | None = None
    has_stock_issue: bool
    added_from: str | None = None
    metadata: dict[str, Any] | None = None
    added_at: datetime
    updated_at: datetime | None = None
    last_validated_at: datetime | None = None
    saved_for_later_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("metadata", mode="before")
    @classmethod
    def parse_metadata(cls, value):
        return _load_metadata(value)


class CartOut(BaseModel):
    """Schema dla koszyka (response)."""

    id: str
    user_id: str | None = None
    session_id: str | None = None
    is_guest: bool
    status: CartStatus
    currency_code: str
    customer_name: str | None = None
    customer_email: str | None = None
    discount_code: str | None = None
    special_instructions: str | None = None
    delivery_type: str | None = None
    delivery_address: str | None = None
    source: str | None = None
    device_type: str | None = None
    metadata: dict[str, Any] | None = None
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    item_count: int
    total_quantity: int
    active_items: List[CartItemOut]
    saved_items: List[CartItemOut]
    created_at: datetime
    updated_at: datetime | None = None
    last_activity_at: datetime | None = None
    expires_at: datetime | None = None
    abandoned_at: datetime | None = None
    converted_at: datetime | None = None
    converted_order_id: str | None = None
    version: int

    model_config = ConfigDict(from_attributes=True)

    @field_validator("metadata", mode="before")
    @classmethod
    def parse_metadata(cls, value):
        return _load_metadata(value)


class CheckoutOut(BaseModel):
    cart: CartOut
    order: dict[str, Any]


class CartPageOut(BaseModel):
    """Strona listy koszykow, od najswiezszej zmiany (updated_at)."""

    items: List[CartOut]
    page: int
    size: int
    total: int
    total_pages: int


class DailyStatisticsOut(BaseModel):
    day: date
    count: int
    converted: int
    abandoned: int
    average_value: Decimal
    total_value: Decimal

    model_config = ConfigDict(from_attributes=True)


class SourceStatisticsOut(BaseModel):
    source: str
    count: int
    converted: int
    average_value: Decimal

    model_config = ConfigDict(from_attributes=True)


class CartStatisticsOut(BaseModel):
    start: datetime
    end: datetime
    total_carts: int
    active_carts: int
    saved_carts: int
    abandoned_carts: int
    expired_carts: int
    converted_carts: int
    average_cart_value: Decimal
    average_item_count: Decimal
    conversion_rate: Decimal = Field(..., description="Procent koszykow zamienionych w zamowienie")
    daily: List[DailyStatisticsOut]
    sources: List[SourceStatisticsOut]

    model_config = ConfigDict(from_attributes=True)


class HealthOut(BaseModel):
    status: str
    service: str
    database: str
