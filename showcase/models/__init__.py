from showcase.models.database import Base, get_db
from showcase.models.user import User
from showcase.models.product import Category, Product, ProductImage
from showcase.models.order import Order, OrderItem
from showcase.models.payout import SellerPayout, SellerPayoutItem
from showcase.models.cart import CartItem

__all__ = [
    "Base",
    "get_db",
    "User",
    "Category",
    "Product",
    "ProductImage",
    "Order",
    "OrderItem",
    "SellerPayout",
    "SellerPayoutItem",
    "CartItem",
]
