from showcase.schemas.orders import (
    OrderCreateRequest,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderStatusResponse,
    OrderSummaryResponse,
)
from showcase.schemas.payments import ConfirmationResponse, PaymentSessionRequest, PaymentSessionResponse
from showcase.schemas.products import ProductCreateRequest, ProductResponse

__all__ = [
    "OrderCreateRequest",
    "OrderCreateResponse",
    "OrderDetailResponse",
    "OrderStatusResponse",
    "OrderSummaryResponse",
    "ConfirmationResponse",
    "PaymentSessionRequest",
    "PaymentSessionResponse",
    "ProductCreateRequest",
    "ProductResponse",
]
