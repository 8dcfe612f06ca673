"""
Delete login sessions whose expiry has passed.

Usage:
    python manage.py cleanup_expired_sessions [--dry-run]
"""
from django.core.management.base import BaseCommand
from django.utils import timezone

from binventory.core.models import UserSession
from binventory.core.sessions import cleanup_expired_sessions


class Command(BaseCommand):
    help = 'Delete expired login sessions'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report how many sessions would be deleted',
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            count = UserSession.objects.filter(expires__lte=timezone.now()).count()
            self.stdout.write(self.style.WARNING(f'DRY RUN MODE - {count} expired session(s) would be deleted'))
            return

        count = cleanup_expired_sessions()
        self.stdout.write(self.style.SUCCESS(f'Deleted {count} expired session(s)'))
