from __future__ import annotations

from bundle_offers.domain.cart.normalizer import (
    CartLine,
    NormalizedCart,
    compute_cart_hash,
    normalize_cart,
)

__all__ = ["CartLine", "NormalizedCart", "compute_cart_hash", "normalize_cart"]
