from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload

from showcase.dependencies import get_current_user
from showcase.models import CartItem, Category, OrderItem, Product, ProductImage, User, get_db
from showcase.schemas.products import CategoryResponse, ProductCreateRequest, ProductResponse, ProductUpdateRequest
from showcase.services.url_utils import validate_image_url

router = APIRouter()


def product_to_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        title=product.title,
        description=product.description,
        price=product.price,
        quantity=product.quantity,
        seller_id=product.seller_id,
        category_id=product.category_id,
        category_name=product.category.name if product.category else None,
        image_url=product.image_url,
        extra_images=[image.url for image in product.images],
    )


@router.get(
    "",
    response_model=list[ProductResponse],
    summary="List products",
)
def list_products(
    db: Annotated[Session, Depends(get_db)],
    category_id: int | None = None,
):
    """Returns products newest first, each with its ordered image list."""
    query = db.query(Product).options(selectinload(Product.images), selectinload(Product.category))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    products = query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    return [product_to_response(product) for product in products]


@router.get(
    "/categories",
    response_model=list[CategoryResponse],
    summary="List categories",
)
def list_categories(
    db: Annotated[Session, Depends(get_db)],
):
    return db.query(Category).order_by(Category.name.asc()).all()


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
)
def get_product(
    product_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product_to_response(product)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="List a new product for sale",
)
def create_product(
    body: ProductCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """The current user becomes the seller. Image URLs come from object storage as-is."""
    if body.category_id is not None and not db.query(Category).filter(Category.id == body.category_id).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category not found")

    product = Product(
        title=body.title,
        description=body.description,
        price=body.price,
        quantity=body.quantity,
        seller_id=current_user.id,
        category_id=body.category_id,
        image_url=validate_image_url(body.image_url) if body.image_url else None,
    )
    product.images = [
        ProductImage(url=validate_image_url(url, "extra_images"), position=position)
        for position, url in enumerate(body.extra_images)
    ]
    db.add(product)
    db.commit()
    db.refresh(product)
    return product_to_response(product)


def _owned_product(db: Session, product_id: int, user: User) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if product.seller_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the seller can change this product")
    return product


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update a product",
)
def update_product(
    product_id: int,
    body: ProductUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Only fields present in the body change. Prices of existing orders are not affected."""
    product = _owned_product(db, product_id, current_user)
    changes = body.model_dump(exclude_unset=True)

    for name in ("title", "price", "quantity"):
        if name in changes and changes[name] is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{name} cannot be empty")
    if changes.get("category_id") is not None and not db.query(Category).filter(Category.id == changes["category_id"]).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category not found")

    if "image_url" in changes:
        changes["image_url"] = validate_image_url(changes["image_url"]) if changes["image_url"] else None
    extra_images = changes.pop("extra_images", None)
    if extra_images is not None:
        product.images = [
            ProductImage(url=validate_image_url(url, "extra_images"), position=position)
            for position, url in enumerate(extra_images)
        ]
    for name, value in changes.items():
        setattr(product, name, value)

    db.commit()
    db.refresh(product)
    return product_to_response(product)


@router.delete(
    "/{product_id}",
    summary="Delete a product",
)
def delete_product(
    product_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Products that appear in an order stay for the order history; set their quantity to 0 instead."""
    product = _owned_product(db, product_id, current_user)
    if db.query(OrderItem).filter(OrderItem.product_id == product.id).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Product has been ordered and cannot be deleted",
        )

    db.query(CartItem).filter(CartItem.product_id == product.id).delete(synchronize_session=False)
    db.delete(product)
    db.commit()
    return {"success": True}
