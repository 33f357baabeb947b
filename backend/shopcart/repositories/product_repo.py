from decimal import Decimal
from typing import Optional

from shopcart.models.product import Product
from sqlalchemy.orm import Session


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[Product]:
        """
        Return an active product by id. Inactive products are treated as
        missing so they can't be added to carts.
        """
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.active == True)
            .first()
        )

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.sku == sku).first()

    def decrement_stock(self, product_id: int, qty: int) -> int:
        """
        Atomic "stock = stock - qty" without a read-modify-write.
        Stock may go negative if the catalog oversold; the order still stands.
        """
        return (
            self.db.query(Product)
            .filter(Product.id == product_id)
            .update({Product.stock: Product.stock - qty}, synchronize_session=False)
        )

    def create_or_update(
        self,
        sku: str,
        name: str,
        price: Decimal,
        stock: int = 0,
        category: str = None,
        description: str = None,
        image: str = None,
    ) -> Product:
        p = self.get_by_sku(sku)
        if p:
            p.name = name
            p.price = price
            p.stock = stock
            p.category = category
            p.description = description
            p.image = image
        else:
            p = Product(
                sku=sku,
                name=name,
                price=price,
                stock=stock,
                category=category,
                description=description,
                image=image,
            )
            self.db.add(p)
        self.db.flush()
        return p
