"""Run the share service with explicit args.

Usage:
    ENCRYPTION_KEY=... SESSION_SECRET=... python -m vault_shares --port 8000
"""
from __future__ import annotations

import argparse

import uvicorn

from .app import create_app
from .settings import ShareSettings


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="vault-shares")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    app = create_app(ShareSettings.from_env())
    uvicorn.run(app, host=args.host, port=args.port, access_log=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
