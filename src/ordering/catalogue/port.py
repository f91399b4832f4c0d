"""Catalogue port (abstract interface).

The ordering context only reads products: their live price, stock and
minimum order quantity. Product CRUD lives elsewhere; adapters translate
whatever the catalogue service exposes into ProductInfo.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from protean.exceptions import ObjectNotFoundError

PLACEHOLDER_IMAGE = "/placeholder-image.jpg"


@dataclass(frozen=True)
class ProductInfo:
    """A read-only view of a catalogue product."""

    product_id: str
    name: str
    price: float
    stock: int
    min_order_quantity: int = 1
    is_active: bool = True
    image: str = PLACEHOLDER_IMAGE


class Catalogue(ABC):
    """Abstract catalogue interface."""

    @abstractmethod
    def find_product(self, product_id: str) -> ProductInfo | None:
        """Return the product, or None if it does not exist."""
        ...

    def get_product(self, product_id: str) -> ProductInfo:
        """Return the product or raise ObjectNotFoundError."""
        product = self.find_product(product_id)
        if product is None:
            raise ObjectNotFoundError(f"Product {product_id} not found")
        return product
