from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from showcase.models.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    display_name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    # Seller account: both must be set for the seller's products to be orderable.
    payout_automation_enabled = Column(Boolean, default=False, nullable=False)
    payout_destination_account_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    products = relationship("Product", back_populates="seller")

    @property
    def is_payout_ready(self) -> bool:
        return bool(self.payout_automation_enabled and self.payout_destination_account_id)
