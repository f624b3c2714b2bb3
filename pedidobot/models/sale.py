from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import relationship

from pedidobot.core.database import Base

STATUS_CART = "cart"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        # at most one open cart per user
        Index(
            "uq_sales_open_cart_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'cart'"),
            sqlite_where=text("status = 'cart'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String(20), nullable=False, default=STATUS_CART, index=True)  # cart / confirmed / cancelled

    # cache of sum(items.price_cents); only written by the cart store
    total_cents = Column(Integer, nullable=False, default=0)
    ticket_path = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True)

    user = relationship("User", back_populates="sales")
    items = relationship("SaleItem", back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.id")


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    flavor_id = Column(Integer, ForeignKey("flavors.id"), nullable=True)

    quantity = Column(Integer, nullable=False, default=0)
    # sub-total for the whole quantity, not the unit price
    price_cents = Column(Integer, nullable=False, default=0)

    sale = relationship("Sale", back_populates="items")
    product = relationship("Product")
    flavor = relationship("Flavor")
