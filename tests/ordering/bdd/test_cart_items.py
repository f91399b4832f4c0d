"""BDD tests for cart stock reservation."""

from pytest_bdd import scenarios

scenarios("features/cart_items.feature")
