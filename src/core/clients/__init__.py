from src.core.clients.ebay import AccessToken, EbayBrowseClient, EbayTokenCache, ListingPage
from src.core.clients.storefront import ProductSink, ProxyProductSink

__all__ = [
    "AccessToken",
    "EbayBrowseClient",
    "EbayTokenCache",
    "ListingPage",
    "ProductSink",
    "ProxyProductSink",
]
