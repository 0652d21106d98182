import logging
import threading

from django.core.management.base import BaseCommand

from callserver.config import get_config
from callserver.services import get_services
from callserver.sweeper import sweep_stale_calls

logger = logging.getLogger("callserver")


class Command(BaseCommand):
    help = "Mark unanswered calls as missed and purge stale signaling data."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single sweep and exit.")
        parser.add_argument(
            "--interval",
            type=int,
            default=None,
            help="Seconds between sweeps (default: CALLSERVER_SWEEP_INTERVAL_SECONDS or 300).",
        )

    def handle(self, *args, **options):
        sweeper = get_services().sweeper

        if options["once"]:
            summary = sweep_stale_calls(sweeper)
            self.stdout.write(str(summary.as_dict()))
            return

        interval = options["interval"] or get_config().sweep_interval_seconds
        stop = threading.Event()
        logger.info(f"[SWEEP] Scheduler started, interval={interval}s")
        try:
            while not stop.is_set():
                sweep_stale_calls(sweeper)
                stop.wait(interval)
        except KeyboardInterrupt:
            logger.info("[SWEEP] Scheduler stopped")
