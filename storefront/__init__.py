"""CF Cell storefront: product catalog and back-office service layer."""

__version__ = "0.1.0"
