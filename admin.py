"""
Operator commands that are not exposed over HTTP.

    python admin.py hard-delete someone@example.com --reason "support ticket"
    python admin.py backfill-status --dry-run
"""

import argparse
import json
import sys

from payback.db import dispose_db, init_db
from payback.services.lifecycle import account_hard_delete
from payback.services.relationship_backfill import relationship_status_backfill


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="payback-admin")
    subcommands = parser.add_subparsers(dest="command", required=True)

    hard_delete = subcommands.add_parser("hard-delete", help="remove an account and everything it owns")
    hard_delete.add_argument("email")
    hard_delete.add_argument("--reason", default=None)

    backfill = subcommands.add_parser("backfill-status", help="set status=friend on legacy relationship records")
    backfill.add_argument("--dry-run", action="store_true")

    return parser


def run(argv=None) -> dict:
    args = build_parser().parse_args(argv)
    if args.command == "hard-delete":
        return account_hard_delete(args.email, reason=args.reason)
    return relationship_status_backfill(dry_run=args.dry_run)


def main(argv=None) -> int:
    init_db()
    try:
        result = run(argv)
    finally:
        dispose_db()
    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("status") == "ok" else 1


if __name__ == "__main__":
    sys.exit(main())
