"""
CLI エントリーポイント。create-order / process-batch / init-db を処理。
"""
from __future__ import annotations

import argparse
import sys

from dotenv import load_dotenv

load_dotenv()


def main() -> None:
    parser = argparse.ArgumentParser(description="TPOS livestream order pipeline")
    parser.add_argument("--dry-run", action="store_true", help="No API/DB, log steps only")
    sub = parser.add_subparsers(dest="command")

    p_order = sub.add_parser("create-order", help="Create a TPOS order from one livestream comment")
    p_order.add_argument("--comment", required=True, metavar="FILE.json", help="Facebook comment JSON")
    p_order.add_argument("--post-id", required=True, metavar="ID", help="Facebook post id (pageId_postId)")
    p_order.add_argument(
        "--comment-type",
        choices=["hang_dat", "hang_le"],
        default=None,
        help="Order classification (default: hang_le)",
    )

    p_batch = sub.add_parser("process-batch", help="Create TPOS variants for a purchase order")
    p_batch.add_argument("--purchase-order-id", required=True, metavar="ID")
    p_batch.add_argument("--watch", action="store_true", help="Track progress until complete or timeout")

    sub.add_parser("init-db", help="Create the local SQLite schema")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(0)

    from tposlive.job import runner

    if args.command == "init-db":
        runner.init_db()
        return
    if args.command == "create-order":
        result = runner.create_order(
            args.comment, args.post_id, comment_type=args.comment_type, dry_run=args.dry_run
        )
    else:
        result = runner.process_batch(
            args.purchase_order_id, watch=args.watch, dry_run=args.dry_run
        )
    runner.print_result(result)
    if result.get("error") or result.get("success") is False:
        sys.exit(1)


if __name__ == "__main__":
    main()
