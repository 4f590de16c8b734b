"""
Replay a provider webhook against the local API.

Disabled: it replayed Zainpay deposit notifications, and the Zainpay
integration has been removed. Running it only reports that and exits
cleanly so existing cron entries and runbooks do not fail.
"""
import sys

import structlog

from monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)

DISABLED_REASON = "Zainpay integration has been removed"


def main() -> int:
    """
    Entry point.

    Returns:
        int: Process exit status (always 0)
    """
    setup_logging()
    logger.info("webhook_replay_started")
    logger.warning("webhook_replay_disabled", provider="zainpay", reason=DISABLED_REASON)
    return 0


if __name__ == "__main__":
    sys.exit(main())
