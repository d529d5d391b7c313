from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, Text, Boolean
from sqlalchemy.orm import relationship

from cart_service.data.database import Base
from cart_service.data.types import UTCDateTime


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False, index=True)

    product_sku = Column(String(100))
    product_name = Column(String(255), nullable=False)
    product_category = Column(String(100))
    product_description = Column(Text)
    product_image_url = Column(String(500))
    preparation_time_minutes = Column(Integer)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    # kopia do raportow, w domenie liczone z unit_price * quantity
    total_price = Column(Numeric(12, 2), nullable=False)
    original_unit_price = Column(Numeric(10, 2))
    currency_code = Column(String(3), nullable=False, default="USD")

    status = Column(String(20), nullable=False, default="ACTIVE", index=True)
    special_instructions = Column(Text)
    is_available = Column(Boolean, nullable=False, default=True)
    stock_quantity = Column(Integer)
    availability_message = Column(String(255))
    added_from = Column(String(50))
    metadata_json = Column("metadata", Text)

    added_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
    last_validated_at = Column(UTCDateTime)
    saved_for_later_at = Column(UTCDateTime)
    removed_at = Column(UTCDateTime)

    cart = relationship("CartModel", back_populates="items")
