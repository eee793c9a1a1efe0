"""
CatalogBridge - Supplier catalog aggregation and marketplace integration core
"""

__version__ = "0.3.0"
