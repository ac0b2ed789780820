from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from showcase.api.products import product_to_response
from showcase.dependencies import get_current_user
from showcase.models import User, get_db
from showcase.schemas.cart import CartItemResponse, CartSaveRequest, CartSaveResponse
from showcase.services.cart import CartLine, clear_server_cart, get_server_cart, save_server_cart

router = APIRouter()


@router.get(
    "",
    response_model=list[CartItemResponse],
    summary="Get my saved cart",
)
def get_cart(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Server-held cart expanded to product rows with their saved quantity."""
    return [
        CartItemResponse(**product_to_response(product).model_dump(), cart_quantity=quantity)
        for product, quantity in get_server_cart(db, current_user.id)
    ]


@router.post(
    "/save",
    response_model=CartSaveResponse,
    summary="Replace my saved cart",
)
def save_cart(
    body: CartSaveRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Replace-all save of the compressed cart (`productId`, `quantity`) pairs."""
    stored = save_server_cart(
        db,
        current_user.id,
        [CartLine(product_id=item.product_id, quantity=item.quantity) for item in body.items if item.product_id],
    )
    return CartSaveResponse(success=True, stored=stored)


@router.delete(
    "/clear",
    response_model=CartSaveResponse,
    summary="Clear my saved cart",
)
def clear_cart(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    clear_server_cart(db, current_user.id)
    return CartSaveResponse(success=True, stored=0)
