from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from pedidobot.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    brand = Column(String(60), nullable=True)
    # retail price of a whole package
    retail_price_cents = Column(Integer, nullable=False, default=0)
    package_size = Column(Integer, nullable=False, default=1)
    active = Column(Boolean, nullable=False, default=True)

    flavor_links = relationship("ProductFlavor", back_populates="product", cascade="all, delete-orphan")


class Flavor(Base):
    __tablename__ = "flavors"

    id = Column(Integer, primary_key=True)
    name = Column(String(60), nullable=False, unique=True)


class ProductFlavor(Base):
    __tablename__ = "product_flavors"
    __table_args__ = (UniqueConstraint("product_id", "flavor_id", name="uq_product_flavor"),)

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    flavor_id = Column(Integer, ForeignKey("flavors.id"), index=True, nullable=False)

    product = relationship("Product", back_populates="flavor_links")
    flavor = relationship("Flavor")
