#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Print a signed staff session token for the X-Session-Token header.",
    )
    parser.add_argument("--staff-id", type=int, required=True, help="Staff member identifier recorded in audit logs")
    parser.add_argument("--role", choices=["Admin", "Staff"], default="Staff")
    parser.add_argument("--ttl-seconds", type=int, default=None, help="Defaults to SESSION_TTL_SECONDS")
    return parser


def main() -> int:
    load_dotenv()
    args = _build_parser().parse_args()
    if args.staff_id <= 0:
        print("--staff-id must be greater than zero.")
        return 2

    # needs SESSION_SIGNING_SECRET at import time
    from services.user_access_service import create_session

    token = create_session({"staffID": args.staff_id, "role": args.role}, ttl_seconds=args.ttl_seconds)
    print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
