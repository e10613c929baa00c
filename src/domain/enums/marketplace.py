from enum import Enum


class Marketplace(str, Enum):
    """Marketplaces with built-in preflight rules and adapter endpoints."""

    EBAY = "ebay"
    FACEBOOK = "facebook"
    MERCARI = "mercari"
    POSHMARK = "poshmark"
    ETSY = "etsy"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Marketplace.EBAY: "eBay",
    Marketplace.FACEBOOK: "Facebook",
    Marketplace.MERCARI: "Mercari",
    Marketplace.POSHMARK: "Poshmark",
    Marketplace.ETSY: "Etsy",
}


def display_name(marketplace: str) -> str:
    """Human-readable name for any marketplace key, known or not."""
    try:
        return Marketplace(marketplace).display_name
    except ValueError:
        return marketplace.capitalize()
