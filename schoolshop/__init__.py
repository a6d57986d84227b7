"""SchoolShop order lifecycle and stock reservation service."""

__version__ = "0.1.0"
