from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, EmailStr, Field

from showcase.schemas.common import CamelRequest, Money


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OrderLineRequest(CamelRequest):
    product_id: int = Field(gt=0)
    quantity: int = Field(default=1, gt=0)
    price: Decimal | None = None


class OrderCreateRequest(CamelRequest):
    customer_name: str = Field(min_length=1, max_length=255)
    customer_email: EmailStr
    customer_phone: str | None = Field(default=None, max_length=50)
    customer_address: str | None = Field(default=None, max_length=500)
    customer_city: str | None = Field(default=None, max_length=120)
    items: list[OrderLineRequest] = Field(min_length=1)
    total_amount: Decimal | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customerName": "Ana Gomez",
                    "customerEmail": "ana@example.com",
                    "customerPhone": "+57 300 000 0000",
                    "customerAddress": "Calle 1 # 2-3",
                    "customerCity": "Bogota",
                    "items": [{"productId": 1, "quantity": 2, "price": "100.00"}],
                    "totalAmount": "200.00",
                }
            ]
        }
    }


class OrderCreateResponse(BaseModel):
    order_id: int
    order_number: str
    status: OrderStatus
    total_amount: Money
    platform_fee_percentage: Decimal
    platform_fee_amount: Money
    seller_net_amount: Money


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    seller_id: int
    title: str | None = None
    image_url: str | None = None
    quantity: int
    unit_price: Money
    subtotal: Money
    platform_fee_amount: Money
    seller_net_amount: Money


class OrderDetailResponse(BaseModel):
    id: int
    order_number: str
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    customer_address: str | None = None
    customer_city: str | None = None
    total_amount: Money
    platform_fee_percentage: Decimal
    platform_fee_amount: Money
    seller_net_amount: Money
    status: OrderStatus
    external_payment_id: str | None = None
    created_at: str
    items: list[OrderItemResponse]


class OrderSummaryResponse(BaseModel):
    id: int
    order_number: str
    customer_email: str
    total_amount: Money
    status: OrderStatus
    created_at: str


class OrderStatusUpdateRequest(CamelRequest):
    status: OrderStatus


class OrderStatusResponse(BaseModel):
    id: int
    order_number: str
    status: OrderStatus
    payment_session_id: str | None = None
