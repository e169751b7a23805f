"""Long-running delivery worker: python scripts/run_delivery_worker.py

Run as many copies as needed; they coordinate through the database only.
"""

import logging

from newsdesk.core.config import settings
from newsdesk.core.db import SessionLocal
from newsdesk.core.logging import configure_logging
from newsdesk.delivery.factory import build_worker


def main() -> int:
    configure_logging(settings.LOG_LEVEL)
    worker = build_worker(settings, SessionLocal)
    logging.getLogger("newsdesk.delivery").info(
        "Delivery worker started (idle=%ss error=%ss)",
        worker.config.idle_poll_interval_s,
        worker.config.error_retry_interval_s,
    )
    try:
        worker.run_forever()
    except KeyboardInterrupt:
        return 0
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
