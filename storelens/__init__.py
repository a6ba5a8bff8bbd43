"""
StoreLens: multi-tenant Shopify analytics dashboard backend
"""

__version__ = "1.0.0"
