"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Scoring settings
# ---------------------------------------------------------------------------


class ScoringWeights(BaseModel):
    """Percentage weights of the legacy weighted scoring model.

    Range and sum checks live in ``scoring_settings.validate_weights`` so
    they surface as a domain validation error rather than a 422.
    """

    model_config = ConfigDict(populate_by_name=True)

    price: float = 30
    rating: float = 25
    delivery_time: float = Field(25, alias="deliveryTime")
    reliability: float = 20


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


class RecommendationItemIn(BaseModel):
    """One line item to find suppliers for."""

    size_quantity_id: int
    quantity: int = 1
    quote_item_id: int | None = None


class RecommendationRequest(BaseModel):
    items: list[RecommendationItemIn]


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class QuoteItemIn(BaseModel):
    size_quantity_id: int
    quantity: int = Field(1, ge=1)
    is_upsell: bool = False


class QuoteCreate(BaseModel):
    """Customer quote request."""

    customer_id: int
    employee_id: int | None = None
    items: list[QuoteItemIn] = Field(default_factory=list)


class QuoteItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quote_id: int
    size_quantity_id: int
    quantity: int
    supplier_id: int | None = None
    supplier_cost: float | None = None
    customer_price: float | None = None
    delivery_days: int | None = None
    is_manual_price: bool | None = None
    is_upsell: bool | None = None
    picked_up: bool | None = None
    picked_up_at: datetime | None = None
    delivered: bool | None = None
    delivered_at: datetime | None = None


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    employee_id: int | None = None
    status: str
    version: int
    parent_quote_id: int | None = None
    total_supplier_cost: float | None = None
    final_value: float | None = None
    rejection_reason: str | None = None
    deal_rating: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[QuoteItemResponse] = Field(default_factory=list)


class QuoteStatusUpdate(BaseModel):
    status: str
    reason: str | None = None


class QuoteRejectRequest(BaseModel):
    reason: str = ""


class RatingRequest(BaseModel):
    """Bounds are checked by the service (1-10)."""

    rating: float


# ---------------------------------------------------------------------------
# Quote pricing
# ---------------------------------------------------------------------------


class SelectionItemIn(BaseModel):
    quote_item_id: int
    size_quantity_id: int
    price_per_unit: float
    delivery_days: int | None = None


class SelectSupplierRequest(BaseModel):
    supplier_id: int
    items: list[SelectionItemIn]
    markup_percentage: float | None = None


class ItemPricingUpdate(BaseModel):
    """Manual price override, or re-derivation from a markup."""

    supplier_cost: float | None = None
    customer_price: float | None = None
    markup_percentage: float | None = None


class AutoPopulateRequest(BaseModel):
    markup_percentage: float | None = None


# ---------------------------------------------------------------------------
# Supplier jobs and prices
# ---------------------------------------------------------------------------


class JobStatusUpdate(BaseModel):
    status: str


class JobCourierConfirm(BaseModel):
    confirmed: bool = True


class SupplierPriceUpsert(BaseModel):
    size_quantity_id: int
    price_per_unit: float = Field(..., ge=0)
    delivery_days: int | None = Field(None, ge=0)


class SupplierPriceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    supplier_id: int
    size_quantity_id: int
    price_per_unit: float
    delivery_days: int | None = None
    is_active: bool | None = None


class SupplierJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    supplier_id: int
    quote_id: int | None = None
    quote_item_id: int | None = None
    size_quantity_id: int | None = None
    quantity: int | None = None
    status: str
    promised_delivery_days: int | None = None
    supplier_marked_ready: bool | None = None
    supplier_ready_at: datetime | None = None
    courier_confirmed_ready: bool | None = None
    supplier_rating: float | None = None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
