from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field

from showcase.schemas.common import CamelRequest, Money


class ProductCreateRequest(CamelRequest):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    quantity: int = Field(ge=0)
    category_id: int | None = None
    image_url: str | None = None
    extra_images: list[str] = Field(default_factory=list)


class ProductUpdateRequest(CamelRequest):
    """Fields left out of the body keep their current value."""

    title: Annotated[str, Field(min_length=1, max_length=255)] | None = None
    description: str | None = None
    price: Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)] | None = None
    quantity: Annotated[int, Field(ge=0)] | None = None
    category_id: int | None = None
    image_url: str | None = None
    extra_images: list[str] | None = None


class ProductResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    price: Money
    quantity: int
    seller_id: int | None = None
    category_id: int | None = None
    category_name: str | None = None
    image_url: str | None = None
    extra_images: list[str]


class CategoryResponse(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}
