from django.core.management.base import BaseCommand

from binventory.qr.services import purge_expired_qr_codes


class Command(BaseCommand):
    help = 'Delete QR codes whose expiry date has passed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many codes would be deleted without deleting them',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        count = purge_expired_qr_codes(dry_run=dry_run)

        if dry_run:
            self.stdout.write(self.style.WARNING(f'DRY RUN: {count} expired QR codes would be deleted'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Deleted {count} expired QR codes'))
