"""Demo services built on the client."""

from embedkv.demo.orders import Order, OrderPublisher
from embedkv.demo.products import Product, ProductService

__all__ = ["Order", "OrderPublisher", "Product", "ProductService"]
