"""
Grant complimentary premium to a seller from the command line.
Run: python -m scripts.grant_premium <seller_id> --admin-id <id> [--days 30] [--reason "..."]
"""
import argparse
import logging
import sys
from datetime import datetime, timedelta

from app.core.dependencies import build_container
from app.db.init_db import init_db
from app.services.premium_errors import PremiumError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def grant_premium(seller_id: str, admin_id: str, days: int = None, reason: str = None) -> bool:
    """Grant premium through the admin facade. Returns False on a domain error."""
    container = build_container()
    expiration = datetime.utcnow() + timedelta(days=days) if days else None
    try:
        snapshot = container.assignments.assign_premium_status(seller_id, admin_id, expiration, reason)
    except PremiumError as e:
        logger.error(f"Could not grant premium to seller {seller_id}: {e.kind} - {e.message}")
        return False
    finally:
        container.subscriptions.shutdown()

    logger.info(f"Seller {seller_id} is premium until {snapshot.end_date or 'further notice'} (subscription {snapshot.id})")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Grant complimentary premium to a seller")
    parser.add_argument("seller_id")
    parser.add_argument("--admin-id", required=True, help="Administrator recorded in the audit trail")
    parser.add_argument("--days", type=int, default=None, help="Length of the grant; omit for open-ended")
    parser.add_argument("--reason", default=None)
    args = parser.parse_args(argv)

    init_db()
    return 0 if grant_premium(args.seller_id, args.admin_id, args.days, args.reason) else 1


if __name__ == "__main__":
    sys.exit(main())
