from django.core.management.base import BaseCommand
from django.utils import timezone
from datetime import timedelta
from bookings.models import Booking
from bookings.tasks import match_drivers_for_booking
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Re-queue driver matching for pending bookings that still have no driver."

    def add_arguments(self, parser):
        parser.add_argument(
            "--older-than",
            type=int,
            default=15,
            help="Only bookings created more than this many minutes ago (default: 15).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show which bookings would be re-queued without queueing them.",
        )

    def handle(self, *args, **options):
        minutes = options["older_than"]
        dry_run = options["dry_run"]
        cutoff = timezone.now() - timedelta(minutes=minutes)

        booking_ids = list(
            Booking.objects.filter(
                status='pending',
                driver__isnull=True,
                created_at__lt=cutoff,
            ).values_list('id', flat=True)
        )

        if dry_run:
            self.stdout.write(
                self.style.WARNING(
                    f"DRY RUN: Would re-queue matching for {len(booking_ids)} bookings older than {minutes} minutes."
                )
            )
            return

        queued = 0
        for booking_id in booking_ids:
            try:
                match_drivers_for_booking.delay(booking_id)
                queued += 1
            except Exception:
                logger.exception("Failed to queue driver matching for booking %s", booking_id)

        logger.info("Re-queued driver matching for %s of %s pending bookings", queued, len(booking_ids))
        self.stdout.write(
            self.style.SUCCESS(
                f"Re-queued matching for {queued} pending bookings older than {minutes} minutes."
            )
        )
