#cart_service/data/models/cart.py
from sqlalchemy import Column, Integer, String, Text, Numeric, Index
from sqlalchemy.orm import relationship

from cart_service.data.database import Base
from cart_service.data.types import UTCDateTime
from cart_service.data.models.cart_item import CartItemModel


class CartModel(Base):
    __tablename__ = "carts"
    __table_args__ = (
        Index("idx_cart_user_status", "user_id", "status"),
        Index("idx_cart_expires", "expires_at"),
        Index("idx_cart_updated", "updated_at"),
    )

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=True, index=True)  # NULL dla koszyka goscia
    session_id = Column(String(255), nullable=True, index=True)

    status = Column(String(20), nullable=False, default="ACTIVE")
    version = Column(Integer, nullable=False, default=1)

    currency_code = Column(String(3), nullable=False, default="USD")
    customer_name = Column(String(100))
    customer_email = Column(String(255))
    discount_code = Column(String(50))
    special_instructions = Column(Text)
    delivery_type = Column(String(20))
    delivery_address = Column(Text)
    source = Column(String(50))
    device_type = Column(String(20))
    user_agent = Column(Text)
    metadata_json = Column("metadata", Text)
    merged_cart_ids = Column(Text, nullable=False, default="")

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    item_count = Column(Integer, nullable=False, default=0)
    total_quantity = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
    last_activity_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=True)
    abandoned_at = Column(UTCDateTime, nullable=True)
    converted_at = Column(UTCDateTime, nullable=True)
    converted_order_id = Column(String(64), nullable=True)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by=[CartItemModel.added_at, CartItemModel.id],
    )
