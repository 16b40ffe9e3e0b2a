from django.core.management.base import BaseCommand, CommandError

from infrastructure.container import container


class Command(BaseCommand):
    help = "Runs the settlement reconciliation sweep once: confirms unknown outcomes and pays out queued payouts."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of due reconciliation entries to process (default: 100)",
        )

    def handle(self, *args, **options):
        if options["limit"] < 1:
            raise CommandError("--limit must be positive")

        self.stdout.write(self.style.SUCCESS("Starting settlement reconciliation..."))

        result = container.reconciliation_service().run_sweep(limit=options["limit"])
        if not result.ok:
            raise CommandError(f"Reconciliation failed: {result.error_detail}")

        counts = result.value
        self.stdout.write(f"Requeued {counts['requeued']} stalled attempts.")
        self.stdout.write(
            f"Processed {counts['processed']} entries: {counts['resolved']} resolved, "
            f"{counts['rescheduled']} rescheduled, {counts['abandoned']} abandoned."
        )
        if counts["abandoned"]:
            self.stdout.write(self.style.WARNING("Some entries were abandoned and need manual resolution."))
        self.stdout.write(self.style.SUCCESS("Settlement reconciliation complete."))
