import logging
import time

from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import DatabaseError

from customers.services import sweep_stale_quotation_customers

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Delete customers left in quotation status past the retention window, once or on a schedule."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single sweep and exit.")
        parser.add_argument(
            "--retention-days",
            type=int,
            default=None,
            help=f"Override the retention window (default: {settings.CUSTOMER_QUOTATION_RETENTION_DAYS}).",
        )

    def handle(self, *args, **options):
        retention_days = options.get("retention_days")

        if options.get("once"):
            self._sweep(retention_days)
            return

        delay = settings.CUSTOMER_SWEEP_STARTUP_DELAY_SECONDS
        interval = settings.CUSTOMER_SWEEP_INTERVAL_HOURS * 3600
        self.stdout.write(f"Customer sweep scheduled: first run in {delay}s, then every {interval}s.")
        time.sleep(delay)
        while True:
            try:
                self._sweep(retention_days)
            except DatabaseError:
                logger.exception("customer_sweep_failed")
            time.sleep(interval)

    def _sweep(self, retention_days):
        deleted = sweep_stale_quotation_customers(retention_days=retention_days)
        self.stdout.write(self.style.SUCCESS(f"Customer sweep complete. Deleted {deleted} stale quotation customers."))
