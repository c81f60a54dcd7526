"""
Reminder worker: sends due booking reminders for every active account.

Each account is processed in its own user context so RLS scopes the
reminder, booking and customer reads to that account. One account's
failure is logged and never stops the others.

    python run_reminder_worker.py            # poll every 60 seconds
    python run_reminder_worker.py --once     # single pass, for cron
"""

import argparse
import logging
import time

from auth.database import AuthDatabase
from auth.types import User
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.sms_client import SmsClient
from clients.vault_client import VaultError, get_database_url, get_email_config, get_sms_config
from core.audit import AuditLogger
from core.config import BusinessConfig
from core.notifications import Notifier
from core.services.reminder_service import ReminderService
from utils.user_context import user_context

logger = logging.getLogger("reminder_worker")


def process_account(reminders: ReminderService, notifier: Notifier, account: User) -> dict[str, int]:
    """Send one account's due reminders under its own user context."""
    with user_context(account.id):
        return reminders.process_due(
            notifier,
            business_name=account.display_name,
            business_phone=account.phone,
            business_email=account.email,
        )


def run_once(accounts: AuthDatabase, reminders: ReminderService, notifier: Notifier) -> dict[str, int]:
    """One pass over every active account. Returns summed counts."""
    totals = {"sent": 0, "failed": 0, "skipped": 0}

    for user_id in accounts.list_active_user_ids():
        account = accounts.get_user_by_id(user_id)
        if account is None:
            continue
        try:
            counts = process_account(reminders, notifier, account)
        except Exception:
            logger.exception(f"Reminder processing failed for account {user_id}")
            continue
        for key, value in counts.items():
            totals[key] += value

    if any(totals.values()):
        logger.info(
            f"Reminders: {totals['sent']} sent, {totals['failed']} failed, {totals['skipped']} skipped"
        )
    return totals


def main() -> None:
    parser = argparse.ArgumentParser(description="Send due booking reminders.")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit.")
    parser.add_argument("--interval", type=int, default=60, help="Seconds between passes.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = BusinessConfig.from_env()
    postgres = PostgresClient(get_database_url())
    email_config = get_email_config()
    email = EmailGatewayClient(
        gateway_url=email_config["gateway_url"],
        api_key=email_config["api_key"],
        hmac_secret=email_config["hmac_secret"],
    )
    try:
        sms = SmsClient(**get_sms_config())
    except VaultError as e:
        logger.warning(f"SMS disabled, no Twilio credentials: {e}")
        sms = None

    accounts = AuthDatabase(postgres)
    reminders = ReminderService(postgres, AuditLogger(postgres), config)
    notifier = Notifier(email, sms, config)

    logger.info("Reminder worker started")
    try:
        while True:
            run_once(accounts, reminders, notifier)
            if args.once:
                break
            time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("Reminder worker stopped")
    finally:
        postgres.close()


if __name__ == "__main__":
    main()
