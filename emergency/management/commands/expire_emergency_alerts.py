from django.core.management.base import BaseCommand
from django.utils import timezone

from emergency.models import AlertStatus, EmergencyAlert
from emergency.services.alerts import expire_stale_alerts


class Command(BaseCommand):
    help = "Expire every active emergency alert whose expiry time has passed (one sweep)."

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='List stale alerts without changing them.')

    def handle(self, *args, **options):
        now = timezone.now()
        if options['dry_run']:
            stale = EmergencyAlert.objects.filter(status=AlertStatus.ACTIVE, expires_at__lt=now).order_by('expires_at', 'id')
            for alert in stale:
                self.stdout.write(f"DRY-RUN {alert.serial_number} ({alert.blood_type}) expired at {alert.expires_at:%Y-%m-%d %H:%M}")
            self.stdout.write(self.style.SUCCESS(f"{stale.count()} alert(s) would be expired."))
            return

        expired = expire_stale_alerts(now)
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} alert(s)."))
