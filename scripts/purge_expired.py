"""
Purge expired access keys.

Meant to run periodically (e.g. a daily cron job) so expired keys do not pile up.

Usage:
    python scripts/purge_expired.py
"""
import logging
import sys
from pathlib import Path

# Add the repository root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from keygate.core.config import KeyPolicy, get_settings
from keygate.core.errors import StoreUnavailable
from keygate.db.session import SessionLocal
from keygate.services.lifecycle import KeyLifecycleService
from keygate.services.sql_key_store import SqlKeyStore

logger = logging.getLogger("keygate.purge")


def purge_expired() -> int:
    """Delete expired keys and return how many were removed."""
    session = SessionLocal()
    try:
        service = KeyLifecycleService(SqlKeyStore(session), KeyPolicy.from_settings(get_settings()))
        return service.purge_expired()
    finally:
        session.close()


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
    try:
        deleted = purge_expired()
    except StoreUnavailable as exc:
        logger.error(f"Purge failed: {exc.message}")
        sys.exit(1)
    print(f"Purged {deleted} expired keys")
