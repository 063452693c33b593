from __future__ import annotations

from django.core.management.base import BaseCommand

from modules.notifications.worker import NotificationWorker
from modules.reconciliation.services import ReconciliationSweeper


class Command(BaseCommand):
    help = "Run one reconciliation sweep synchronously."

    def add_arguments(self, parser):
        parser.add_argument(
            "--drain-queue",
            action="store_true",
            help="Process one notification batch after the sweep.",
        )

    def handle(self, *args, **options):
        self.stdout.write("Running reconciliation sweep...")
        report = ReconciliationSweeper().run()

        counters = ", ".join(f"{key}={value}" for key, value in report.model_dump().items())
        self.stdout.write(
            self.style.SUCCESS(
                f"Sweep completed: corrections={report.total_corrections}, {counters}"
            )
        )
        if report.errors:
            self.stdout.write(self.style.WARNING(f"{report.errors} item(s) need attention."))

        if options["drain_queue"]:
            batch = NotificationWorker().process_batch()
            self.stdout.write(
                self.style.SUCCESS(
                    f"Queue batch: claimed={batch.claimed}, sent={batch.sent}, "
                    f"retried={batch.retried}, failed={batch.failed}"
                )
            )
