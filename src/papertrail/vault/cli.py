#!/usr/bin/env python3
"""
Papertrail CLI Commands

Provides command-line utilities for health checks and orphan reports.
These are exposed as console scripts via pyproject.toml.
"""

import argparse
import json
import sys
from typing import Dict, List, Optional

from loguru import logger

from .config import load_config, setup_logging
from .exceptions import VaultError
from .vault import DocumentVault, create_vault


def _build_vault(args: argparse.Namespace) -> DocumentVault:
    config = load_config()
    if args.bucket:
        config = config.model_copy(update={"aws_s3_bucket": args.bucket})
    setup_logging(config)

    if args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")

    return create_vault(config)


def _common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--bucket",
        help="S3 bucket name (overrides config)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results in JSON format"
    )


def health_check(argv: Optional[List[str]] = None) -> None:
    """Console script for health checking the vault."""
    parser = argparse.ArgumentParser(
        description="Check that the vault's configuration and bucket are usable"
    )
    _common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        vault = _build_vault(args)
        health = vault.get_system_health()
    except VaultError as e:
        logger.error(f"Health check failed: {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps(health, indent=2, default=str))
    else:
        _print_health_results(health)

    # Exit with error code if unhealthy
    if health["status"] != "healthy":
        sys.exit(1)


def _print_health_results(health: Dict) -> None:
    """Print health check results in human-readable format."""
    print("=" * 50)
    print("PAPERTRAIL VAULT HEALTH")
    print("=" * 50)
    print(f"\nStatus: {health['status'].upper()}")
    print(f"Timestamp: {health['timestamp']}")

    if health["status"] == "healthy":
        print(f"Object store: {health['object_store']}")
        print(f"Progress backend: {health['progress_backend']}")
        print(f"Cache backend: {health['cache'].get('backend', 'unknown')}")
    else:
        print(f"Error: {health.get('error')}")

    print("\n" + "=" * 50)


def orphan_report(argv: Optional[List[str]] = None) -> None:
    """Console script listing a user's stored objects that no progress entry references."""
    parser = argparse.ArgumentParser(
        description="List uploaded objects no progress entry references (read-only)"
    )
    parser.add_argument(
        "--user",
        required=True,
        help="User id whose uploads to reconcile"
    )
    _common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        vault = _build_vault(args)
        orphans = vault.find_orphaned_objects(args.user)
    except VaultError as e:
        logger.error(f"Orphan report failed: {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps({"user_id": args.user, "orphans": orphans}, indent=2))
        return

    print(f"Orphaned objects for user {args.user}: {len(orphans)}")
    for key in orphans:
        print(f"  {key}")


if __name__ == "__main__":
    # If called directly, show help
    print("Papertrail CLI - Available commands:")
    print("  papertrail-health   - Check vault health")
    print("  papertrail-orphans  - Report unreferenced uploads")
