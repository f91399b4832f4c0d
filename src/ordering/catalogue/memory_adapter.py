"""In-memory catalogue for development and testing.

Holds ProductInfo records keyed by product id. Stock can be changed at
runtime to simulate inventory moving between a cart add and a later
checkout or cancellation.
"""

from dataclasses import replace
from threading import RLock

from protean.exceptions import ObjectNotFoundError, ValidationError

from ordering.catalogue.port import PLACEHOLDER_IMAGE, Catalogue, ProductInfo


class InMemoryCatalogue(Catalogue):
    def __init__(self) -> None:
        self._products: dict[str, ProductInfo] = {}
        self._lock = RLock()

    def add_product(
        self,
        product_id: str,
        name: str,
        price: float,
        stock: int,
        min_order_quantity: int = 1,
        is_active: bool = True,
        image: str = PLACEHOLDER_IMAGE,
    ) -> ProductInfo:
        if stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})
        if min_order_quantity < 1:
            raise ValidationError({"min_order_quantity": ["Minimum order quantity must be at least 1"]})

        product = ProductInfo(
            product_id=str(product_id),
            name=name,
            price=price,
            stock=stock,
            min_order_quantity=min_order_quantity,
            is_active=is_active,
            image=image,
        )
        with self._lock:
            self._products[product.product_id] = product
        return product

    def find_product(self, product_id: str) -> ProductInfo | None:
        with self._lock:
            return self._products.get(str(product_id))

    def _update(self, product_id: str, **changes) -> ProductInfo:
        with self._lock:
            product = self._products.get(str(product_id))
            if product is None:
                raise ObjectNotFoundError(f"Product {product_id} not found")
            product = replace(product, **changes)
            self._products[product.product_id] = product
            return product

    def set_stock(self, product_id: str, stock: int) -> ProductInfo:
        if stock < 0:
            raise ValidationError({"stock": ["Stock cannot be negative"]})
        return self._update(product_id, stock=stock)

    def set_price(self, product_id: str, price: float) -> ProductInfo:
        return self._update(product_id, price=price)

    def deactivate(self, product_id: str) -> ProductInfo:
        return self._update(product_id, is_active=False)

    def remove_product(self, product_id: str) -> None:
        with self._lock:
            self._products.pop(str(product_id), None)

    def clear(self) -> None:
        with self._lock:
            self._products.clear()
