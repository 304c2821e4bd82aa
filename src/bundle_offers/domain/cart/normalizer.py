from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping


@dataclass(frozen=True)
class CartLine:
    variant_id: str
    quantity: int


@dataclass(frozen=True)
class NormalizedCart:
    """Deduplicated cart lines sorted by variant id, with the content hash."""

    lines: tuple[CartLine, ...]
    cart_hash: str

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def quantities(self) -> dict[str, int]:
        return {line.variant_id: line.quantity for line in self.lines}

    def to_list(self) -> list[dict[str, Any]]:
        return [{"variantId": line.variant_id, "quantity": line.quantity} for line in self.lines]


def _read_line(item: Any) -> tuple[str, Any]:
    if isinstance(item, CartLine):
        return item.variant_id, item.quantity
    if isinstance(item, Mapping):
        variant_id = item.get("variantId", item.get("variant_id"))
        return ("" if variant_id is None else str(variant_id)), item.get("quantity", 0)
    return "", 0


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def normalize_cart(items: Iterable[Any] | None) -> NormalizedCart:
    """
    Collapse raw cart lines into a canonical cart.

    Lines with an empty variant id or a non-positive/non-finite quantity are
    dropped. Duplicate variant ids are merged by summing floored quantities and
    the result is sorted by variant id so the hash is independent of line order.
    """
    merged: dict[str, int] = {}
    for item in items or []:
        variant_id, raw_qty = _read_line(item)
        variant_id = variant_id.strip()
        qty = _as_number(raw_qty)
        if not variant_id or qty is None or qty <= 0:
            continue
        merged[variant_id] = merged.get(variant_id, 0) + math.floor(qty)

    lines = tuple(
        CartLine(variant_id=variant_id, quantity=quantity)
        for variant_id, quantity in sorted(merged.items())
        if quantity > 0
    )
    return NormalizedCart(lines=lines, cart_hash=_hash_lines(lines))


def compute_cart_hash(items: Iterable[Any] | None) -> str:
    return normalize_cart(items).cart_hash


def _hash_lines(lines: tuple[CartLine, ...]) -> str:
    canonical = json.dumps(
        [{"variantId": line.variant_id, "quantity": line.quantity} for line in lines],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
