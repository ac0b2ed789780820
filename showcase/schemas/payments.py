from pydantic import BaseModel, EmailStr, Field

from showcase.schemas.common import CamelRequest
from showcase.schemas.orders import OrderStatus


class PayerRequest(CamelRequest):
    email: EmailStr | None = None
    name: str | None = None


class PaymentSessionRequest(CamelRequest):
    order_id: int = Field(gt=0)
    payer: PayerRequest | None = None


class BackUrlsResponse(BaseModel):
    success: str
    failure: str
    pending: str


class PaymentSessionResponse(BaseModel):
    order_id: int
    session_id: str
    checkout_url: str
    back_urls: BackUrlsResponse


class PayoutSummaryResponse(BaseModel):
    processed: int
    paid: int
    failed: int
    skipped: int
    payout_ids: list[int]


class ConfirmationResponse(BaseModel):
    order_number: str
    status: OrderStatus
    already_completed: bool
    payouts: PayoutSummaryResponse
