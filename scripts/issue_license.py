#!/usr/bin/env python3
"""
Kaizen Gate - License Issuer

INTERNAL USE ONLY - run by operators against the credential store.

Creates a license for a client prefix and prints the raw license string once.
Only its peppered hash is stored, so the string cannot be recovered later.

Usage:
    python scripts/issue_license.py \
        --prefix ACME \
        --client-name "ACME Corp" \
        --days 365 \
        --allow-all-reports
"""

import argparse
import asyncio
import sys
from datetime import datetime, timedelta

from kaizen_gate.core.config import settings
from kaizen_gate.db.session import Database
from kaizen_gate.services.license_issuance import issue_license


async def _issue(args: argparse.Namespace) -> int:
    if not settings.AUTH_PEPPER.strip():
        print("ERROR: AUTH_PEPPER is not set; refusing to store an unpeppered hash.", file=sys.stderr)
        return 1

    expires_at = None
    if args.days is not None:
        expires_at = datetime.utcnow() + timedelta(days=args.days)

    database = Database.from_settings(settings)
    try:
        async with database.session() as db:
            issued = await issue_license(
                db,
                prefix=args.prefix,
                pepper=settings.AUTH_PEPPER,
                expires_at=expires_at,
                allow_all_reports=args.allow_all_reports,
                client_name=args.client_name,
                license_string=args.license,
            )
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        await database.dispose()

    print(f"License id:  {issued.license_id}")
    print(f"Client:      {issued.prefix}")
    print(f"Expires at:  {issued.expires_at.isoformat() + 'Z' if issued.expires_at else 'never'}")
    print()
    print(issued.license_string)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a Kaizen Gate license for a client prefix")
    parser.add_argument(
        "--prefix", "-p",
        required=True,
        help="Client prefix, 2-6 letters (e.g. ACME)"
    )
    parser.add_argument(
        "--client-name", "-n",
        help="Display name, used when the client row is created"
    )
    parser.add_argument(
        "--days", "-d",
        type=int,
        default=365,
        help="License validity in days (default: 365)"
    )
    parser.add_argument(
        "--no-expiry",
        action="store_true",
        help="Issue a license that never expires"
    )
    parser.add_argument(
        "--allow-all-reports",
        action="store_true",
        help="Show every active report of the client instead of explicit grants"
    )
    parser.add_argument(
        "--license",
        help="Use this license string instead of generating one"
    )

    args = parser.parse_args()
    if args.no_expiry:
        args.days = None

    sys.exit(asyncio.run(_issue(args)))


if __name__ == "__main__":
    main()
