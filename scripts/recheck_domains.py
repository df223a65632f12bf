"""DNS drift check for cron hosts without Celery beat.

Usage:
  python scripts/recheck_domains.py            # recheck every pending / verifying / active domain
  python scripts/recheck_domains.py --json     # print the summary as JSON
  python scripts/recheck_domains.py --domain-id <uuid>   # verify one domain
"""
import argparse
import json
import logging
import sys
from uuid import UUID

from app.crud.crud_custom_domain import DomainPersistenceError, SqlDomainStore
from app.db.session import SessionLocal
from app.logging_config import setup_logging
from app.services.domain_verification import DomainNotFoundError, DomainVerificationEngine
from app.tasks.domain_tasks import run_recheck

logger = logging.getLogger("linkbio.scripts")


def _verify_one(domain_id: UUID) -> dict:
    db = SessionLocal()
    try:
        engine = DomainVerificationEngine(SqlDomainStore(db))
        return engine.verify_by_id(domain_id).model_dump(mode="json")
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--domain-id", type=UUID, help="verify a single domain instead of the batch")
    parser.add_argument("--json", action="store_true", help="print the result as JSON")
    args = parser.parse_args(argv)

    setup_logging()

    try:
        result = _verify_one(args.domain_id) if args.domain_id else run_recheck()
    except DomainNotFoundError as e:
        logger.error("%s", e)
        return 1
    except DomainPersistenceError as e:
        logger.error("Failed to update domain status: %s", e)
        return 2

    if args.json:
        print(json.dumps(result, indent=2, default=str))
    elif args.domain_id:
        print(f"{result['domain']}: {result['status']} - {result['message']}")
    else:
        for item in result["results"]:
            print(f"{item['domain']}: {item['status']} (verified={item['verified']})")
        for item in result["errors"]:
            print(f"{item['domain']}: ERROR {item['error']}")
        print(f"Checked {result['checked']} domain(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
