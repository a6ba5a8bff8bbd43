"""
Demo Data Module
"""
from .generators import ShopifyDataGenerator

__all__ = ["ShopifyDataGenerator"]
