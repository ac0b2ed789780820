from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from showcase.models.database import Base

PAYOUT_STATUS_PENDING = "pending"
PAYOUT_STATUS_SETTLING = "settling"
PAYOUT_STATUS_PAID = "paid"


class SellerPayout(Base):
    __tablename__ = "seller_payouts"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=PAYOUT_STATUS_PENDING, index=True)  # pending | settling | paid
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # NULL when created by the system
    external_transfer_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("SellerPayoutItem", back_populates="payout", order_by="SellerPayoutItem.id")


class SellerPayoutItem(Base):
    __tablename__ = "seller_payout_items"

    id = Column(Integer, primary_key=True, index=True)
    payout_id = Column(Integer, ForeignKey("seller_payouts.id"), nullable=False, index=True)
    # Unique: an order line is paid out at most once.
    order_item_id = Column(Integer, ForeignKey("order_items.id"), unique=True, nullable=False)

    payout = relationship("SellerPayout", back_populates="items")
    order_item = relationship("OrderItem")
