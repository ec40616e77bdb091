#!/usr/bin/env python3
"""
Backfill direction, has_response and filtering_status for stored emails.

Re-runs the eligibility classifier over every email (or one account's
emails). Used after connecting an additional business address, since
that turns earlier "inbound" mail from that address into outbound mail
and changes which customer emails count as answered.

Run:  python scripts/backfill_email_classification.py [--account-id N] [--dry-run] [--verbose]

Exit codes:
  0 - Backfill finished
  2 - Fatal error (database connection, imports)
"""

import argparse
import sys
from collections import Counter
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

try:
    from app import database
    from app.models.email import Email
    from app.services.eligibility_classifier import (
        apply_classification,
        find_thread_emails,
        get_connected_addresses,
    )
except ImportError as e:
    print(f"ERROR: Failed to import required modules: {e}")
    print("Make sure you're running from the project root and dependencies are installed.")
    sys.exit(2)


def main():
    parser = argparse.ArgumentParser(
        description="Reclassify stored emails for FAQ eligibility"
    )
    parser.add_argument(
        "--account-id",
        type=int,
        default=None,
        help="Only reclassify emails of this account"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without writing"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print detailed output for each changed email"
    )
    args = parser.parse_args()

    print("Connecting to database...")
    try:
        database.init_db()
        if database.SessionLocal is None:
            print("ERROR: Database not configured (DATABASE_URL missing).")
            sys.exit(2)
    except Exception as e:
        print(f"ERROR: Database connection failed: {e}")
        sys.exit(2)

    db = database.SessionLocal()
    try:
        connected = get_connected_addresses(db)
        print(f"Connected business addresses: {len(connected)}")

        query = db.query(Email)
        if args.account_id is not None:
            query = query.filter(Email.account_id == args.account_id)
        emails = query.order_by(Email.id).all()

        total = len(emails)
        if total == 0:
            print("Nothing to do - no emails stored.")
            return

        print(f"Reclassifying {total} emails...\n")

        changed = 0
        for email in emails:
            before = (email.direction, email.filtering_status)
            if apply_classification(db, email, connected, find_thread_emails(db, email)):
                changed += 1
                if args.verbose:
                    print(
                        f"  [{email.id}] {email.sender_email}: "
                        f"{before[0]}/{before[1]} -> {email.direction}/{email.filtering_status}"
                        f" ({email.filtering_reason})"
                    )

        by_status = Counter(e.filtering_status for e in emails)
        by_reason = Counter(e.filtering_reason for e in emails)

        if args.dry_run:
            db.rollback()
            print(f"\n[DRY RUN] Would update {changed} emails.")
        else:
            db.commit()
            print(f"\nCommitted {changed} updates.")

        # Summary
        print(f"\n{'=' * 50}")
        print(f"Total:      {total}")
        print(f"Changed:    {changed}")
        for status, count in sorted(by_status.items()):
            print(f"{status + ':':<12}{count}")
        print("Reasons:")
        for reason, count in by_reason.most_common():
            print(f"  {reason}: {count}")
        print(f"{'=' * 50}")

    except Exception as e:
        db.rollback()
        print(f"ERROR: {e}")
        sys.exit(2)
    finally:
        db.close()


if __name__ == "__main__":
    main()
