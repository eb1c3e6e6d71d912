from __future__ import annotations

from django.core.management.base import BaseCommand

from donor.models import Donor
from donor.signals import cell_for
from emergency.exceptions import InvalidCoordinate


class Command(BaseCommand):
	help = "Derive donor search cells (geohash) from saved latitude/longitude pairs."

	def add_arguments(self, parser):
		parser.add_argument('--force', action='store_true', help='Recompute cells even for donors that already have one.')
		parser.add_argument('--limit', type=int, help='Maximum number of donors to process this run.')
		parser.add_argument('--dry-run', action='store_true', help='Preview cells without saving changes.')

	def handle(self, *args, **options):
		queryset = Donor.objects.filter(latitude__isnull=False, longitude__isnull=False)
		if not options['force']:
			queryset = queryset.filter(geohash='')

		queryset = queryset.select_related('user').order_by('id')
		limit = options.get('limit')
		if limit:
			queryset = queryset[:limit]

		donors = list(queryset)
		total = len(donors)
		if not total:
			self.stdout.write(self.style.SUCCESS('No donors require a search cell.'))
			return

		updated = 0
		failures = []
		for donor in donors:
			try:
				cell = cell_for(donor)
			except InvalidCoordinate as exc:
				failures.append(donor)
				self.stderr.write(f"Donor #{donor.id} ({donor.get_name}) has unusable coordinates: {exc.message}")
				continue

			if options['dry_run']:
				self.stdout.write(f"DRY-RUN #{donor.id} -> {cell}")
				updated += 1
				continue

			# pre_save recomputes the cell when 'geohash' is among update_fields.
			donor.save(update_fields=['geohash'])
			updated += 1
			self.stdout.write(f"Updated donor #{donor.id} cell to {donor.geohash}")

		self.stdout.write(self.style.SUCCESS(f"Assigned cells to {updated} of {total} donors."))
		if failures:
			self.stdout.write(self.style.WARNING(f"{len(failures)} donors have unusable coordinates."))
