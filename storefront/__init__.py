"""Client-side identity and cart consistency engine for the storefront app."""

from storefront.client import StorefrontClient

__all__ = ["StorefrontClient"]
