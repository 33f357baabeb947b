from sqlalchemy import Boolean, Column, Integer, Numeric, String, Text

from shopcart.db import Base


class Product(Base):
    """Catalog entry. Carts read price/category/stock; only orders write stock."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=True, index=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    image = Column(String(512), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    stock = Column(Integer, default=0, nullable=False)

    def is_available(self, quantity: int) -> bool:
        return self.active and quantity <= self.stock

    def __repr__(self):
        return f"<Product sku={self.sku} price={self.price} stock={self.stock}>"
