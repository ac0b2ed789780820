from datetime import datetime

from pydantic import BaseModel, Field

from showcase.schemas.common import CamelRequest, Money


class FinanceSummaryResponse(BaseModel):
    start: datetime | None = None
    end: datetime | None = None
    order_count: int
    gross_sales: Money
    platform_revenue: Money
    seller_net: Money


class SellerBalanceResponse(BaseModel):
    seller_id: int
    email: str
    display_name: str | None = None
    pending_balance: Money
    in_pending_payouts: Money
    paid: Money


class PayoutCreateRequest(CamelRequest):
    seller_id: int = Field(gt=0)
    notes: str | None = Field(default=None, max_length=1000)


class PayoutMarkPaidRequest(CamelRequest):
    notes: str | None = Field(default=None, max_length=1000)


class PayoutResponse(BaseModel):
    id: int
    seller_id: int
    total_amount: Money
    status: str
    notes: str | None = None
    created_by: int | None = None
    external_transfer_id: str | None = None
    order_item_ids: list[int]
    created_at: str
    processed_at: str | None = None
