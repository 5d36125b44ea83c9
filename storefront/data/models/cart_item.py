from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship, validates

from storefront.data.database import Base
from storefront.data.models.cart import utcnow


class CartItemModel(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),)

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    # tylko referencja, produkt zyje w katalogu
    product_id = Column(Integer, nullable=False)

    quantity = Column(Integer, nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    cart = relationship("CartModel", back_populates="items")

    @validates("quantity")
    def validate_quantity(self, key, value):
        if value is None or value < 1:
            raise ValueError("Quantity must be at least 1")
        return value
