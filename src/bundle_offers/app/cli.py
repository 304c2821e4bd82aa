from __future__ import annotations

import argparse
import json
import sys
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from bundle_offers.app.factory import create_service
from bundle_offers.application.service import BundleOfferService
from bundle_offers.domain.bundles.models import VariantSnapshot
from bundle_offers.domain.offers.models import ReconcileMode
from bundle_offers.observability.logging import configure_logging


def load_input(path: str) -> dict[str, Any]:
    """Read `{"items": [...], "snapshots": [...]}`; `-` reads stdin."""
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
    if isinstance(data, list):
        data = {"items": data}
    return data


def parse_snapshots(raw: Any) -> Optional[dict[str, VariantSnapshot]]:
    if raw is None:
        return None
    snapshots: dict[str, VariantSnapshot] = {}
    for item in raw:
        variant_id = str(item.get("variantId") or "").strip()
        if not variant_id:
            continue
        snapshots[variant_id] = VariantSnapshot(
            variant_id=variant_id,
            product_id=str(item.get("productId") or ""),
            price=float(item["price"]) if item.get("price") is not None else float("nan"),
            is_active=item.get("isActive") is not False,
        )
    return snapshots


def _evaluate(service: BundleOfferService, store_id: str, data: dict[str, Any]):
    items = data.get("items") or []
    snapshots = parse_snapshots(data.get("snapshots"))
    if snapshots is None:
        return service.evaluate_cart(store_id, items)
    return service.evaluate(store_id, items, snapshots)


def _wait_forever() -> None:
    threading.Event().wait()


def main(argv: Optional[list[str]] = None, service: Optional[BundleOfferService] = None) -> int:
    # stdout carries the JSON result
    configure_logging(stream=sys.stderr)
    parser = argparse.ArgumentParser(description="Bundle offers CLI")
    subparsers = parser.add_subparsers(dest="command")

    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate a cart against a store's bundles")
    evaluate_parser.add_argument("--store", required=True, dest="store_id")
    evaluate_parser.add_argument("--input", required=True, dest="input_path")

    sweep_parser = subparsers.add_parser("sweep", help="Expire stale promotion records")
    sweep_parser.add_argument(
        "--watch", action="store_true", help="Keep sweeping on SWEEP_INTERVAL_SECONDS until interrupted"
    )

    reconcile_parser = subparsers.add_parser("reconcile", help="Evaluate a cart and issue its promotion")
    reconcile_parser.add_argument("--store", required=True, dest="store_id")
    reconcile_parser.add_argument("--input", required=True, dest="input_path")
    reconcile_parser.add_argument("--cart-key", dest="cart_key")
    reconcile_parser.add_argument("--mode", choices=[m.value for m in ReconcileMode])
    reconcile_parser.add_argument("--ttl-hours", type=int, dest="ttl_hours")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    service = service or create_service()

    if args.command == "sweep" and args.watch:
        with service:
            try:
                _wait_forever()
            except KeyboardInterrupt:
                # Ctrl-C ends the watch
                pass
        return 0

    if args.command == "sweep":
        count = service.sweep_expired()
        print(json.dumps({"expired": count}))
        return 0

    data = load_input(args.input_path)
    evaluation = _evaluate(service, args.store_id, data)
    if args.command == "evaluate":
        print(json.dumps(evaluation.to_dict(), indent=2))
        return 0

    outcome = service.issue_or_reuse(
        args.store_id,
        data.get("items") or [],
        evaluation,
        ttl_hours=args.ttl_hours,
        cart_key=args.cart_key,
        mode=ReconcileMode(args.mode) if args.mode else None,
    )
    print(
        json.dumps(
            {
                "action": outcome.action.value,
                "offer": outcome.offer.to_dict() if outcome.offer else None,
                "failure": asdict(outcome.failure) if outcome.failure else None,
                "evaluation": evaluation.to_dict(),
            },
            indent=2,
            default=str,
        )
    )
    return 2 if outcome.failed else 0


if __name__ == "__main__":
    sys.exit(main())
