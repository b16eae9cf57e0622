"""
Listing Enhancer turns incomplete product records into marketplace-ready listings.
"""

__version__ = "0.1.0"
