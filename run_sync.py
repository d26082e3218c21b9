#!/usr/bin/env python3
"""
Run a Shopify sync or a CSV export import from the command line.

Usage:
    python run_sync.py                        # full resync
    python run_sync.py --import-dir ./order_exports
    python run_sync.py --import-s3 --kind customers
    python run_sync.py --upload-dir ./order_exports   # upload to S3, then import
"""
import argparse
import asyncio
import json
import sys

from storesync.core.logging_config import configure_logging
from storesync.core.settings import settings
from storesync.domains.sync.handlers import (
    run_bulk_import,
    run_full_sync,
    upload_and_import,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="storesync local runner")
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--import-dir",
        metavar="PATH",
        help="Import CSV export files from a local directory",
    )
    source.add_argument(
        "--import-s3",
        action="store_true",
        help="Import CSV export files from EXPORT_FILES_BUCKET/EXPORT_FILES_PREFIX",
    )
    source.add_argument(
        "--upload-dir",
        metavar="PATH",
        help="Upload CSV export files to EXPORT_FILES_BUCKET/EXPORT_FILES_PREFIX, "
        "then import them",
    )
    parser.add_argument(
        "--kind",
        choices=["orders", "customers", "products"],
        default="orders",
        help="Record kind of the export files (default: orders)",
    )
    return parser.parse_args()


async def main() -> int:
    args = parse_args()
    logger = configure_logging(settings.LOG_LEVEL)

    if args.import_dir:
        logger.info(f"Importing {args.kind} exports from {args.import_dir}")
        response = await run_bulk_import(
            {"directory": args.import_dir, "kind": args.kind}
        )
    elif args.import_s3:
        logger.info(f"Importing {args.kind} exports from S3")
        response = await run_bulk_import({"kind": args.kind})
    elif args.upload_dir:
        logger.info(f"Uploading {args.kind} exports from {args.upload_dir}")
        response = await upload_and_import(args.upload_dir, kind=args.kind)
    else:
        logger.info("Running full Shopify sync")
        response = await run_full_sync()

    body = json.loads(response["body"])
    print(json.dumps({"statusCode": response["statusCode"], "body": body}, indent=2))
    return 0 if response["statusCode"] == 200 else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
