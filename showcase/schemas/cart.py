from pydantic import BaseModel, Field

from showcase.schemas.common import CamelRequest
from showcase.schemas.products import ProductResponse


class CartLineRequest(CamelRequest):
    product_id: int | None = None
    quantity: int = Field(default=1, gt=0)


class CartSaveRequest(CamelRequest):
    items: list[CartLineRequest] = Field(default_factory=list)


class CartItemResponse(ProductResponse):
    cart_quantity: int


class CartSaveResponse(BaseModel):
    success: bool
    stored: int
