"""orderdash command line.

Usage:
    orderdash serve --port 8000
    orderdash purge --yes
    orderdash sign payload.json
    orderdash replay payload.json --topic orders/create --url http://localhost:8000/api/shopify
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import httpx

from orderdash.config import Settings, configure_logging
from orderdash.errors import OrderdashError
from orderdash.store.factory import build_store
from orderdash.webhooks.verification import ShopifyVerifier


def _read_body(path: str) -> bytes:
    body_path = Path(path)
    if not body_path.exists():
        print(f"ERROR: payload file not found: {body_path}", file=sys.stderr)
        sys.exit(1)
    return body_path.read_bytes()


def _verifier(settings: Settings) -> ShopifyVerifier:
    verifier = ShopifyVerifier(settings.shopify_webhook_secret)
    if not verifier.configured:
        print("ERROR: SHOPIFY_WEBHOOK_SECRET is not set", file=sys.stderr)
        sys.exit(1)
    return verifier


def cmd_serve(args: argparse.Namespace, settings: Settings) -> None:
    """Run the API under uvicorn."""
    import uvicorn

    from orderdash.app import create_app

    uvicorn.run(
        create_app(settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )


def cmd_purge(args: argparse.Namespace, settings: Settings) -> None:
    """Delete every stored order."""
    if not args.yes:
        print("Refusing to delete all orders without --yes", file=sys.stderr)
        sys.exit(2)
    store = build_store(settings)
    try:
        deleted = store.delete_all_orders()
    finally:
        store.close()
    print(f"Deleted {deleted} orders from {store.name} store")


def cmd_sign(args: argparse.Namespace, settings: Settings) -> None:
    """Print the X-Shopify-Hmac-Sha256 value for a payload file."""
    print(_verifier(settings).sign(_read_body(args.payload)))


def cmd_replay(args: argparse.Namespace, settings: Settings) -> None:
    """Sign a payload file and POST it to a running instance."""
    body = _read_body(args.payload)
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Hmac-Sha256": _verifier(settings).sign(body),
        "X-Shopify-Topic": args.topic,
    }
    try:
        resp = httpx.post(args.url, content=body, headers=headers, timeout=settings.store_timeout)
    except httpx.HTTPError as e:
        print(f"ERROR: request failed: {type(e).__name__}", file=sys.stderr)
        sys.exit(1)
    print(f"Status: {resp.status_code}")
    print(f"Response: {resp.text}")
    if resp.status_code >= 400:
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="orderdash", description="Shopify order dashboard backend")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.set_defaults(func=cmd_serve)

    p_purge = sub.add_parser("purge", help="Delete every stored order")
    p_purge.add_argument("--yes", action="store_true", help="Confirm deletion")
    p_purge.set_defaults(func=cmd_purge)

    p_sign = sub.add_parser("sign", help="Print the webhook signature for a payload file")
    p_sign.add_argument("payload")
    p_sign.set_defaults(func=cmd_sign)

    p_replay = sub.add_parser("replay", help="Sign and send a payload file")
    p_replay.add_argument("payload")
    p_replay.add_argument("--topic", required=True)
    p_replay.add_argument("--url", default="http://127.0.0.1:8000/api/shopify")
    p_replay.set_defaults(func=cmd_replay)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level)
    try:
        args.func(args, settings)
    except OrderdashError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
