"""
Apply the audit log retention window.

Usage:
    python manage.py clear_old_audit_logs --days 90 [--dry-run]
"""
from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from binventory.core.audit import clear_old_audit_logs
from binventory.core.models import AuditLog


class Command(BaseCommand):
    help = 'Delete audit logs older than the given number of days'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=90,
            help='Keep logs from the last N days (default: 90)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report how many logs would be deleted',
        )

    def handle(self, *args, **options):
        days = options['days']
        if days < 1:
            raise CommandError('--days must be at least 1')

        cutoff = timezone.now() - timedelta(days=days)
        if options['dry_run']:
            count = AuditLog.objects.filter(created_at__lt=cutoff).count()
            self.stdout.write(self.style.WARNING(f'DRY RUN MODE - {count} audit log(s) older than {days} days would be deleted'))
            return

        deleted = clear_old_audit_logs(cutoff)
        self.stdout.write(self.style.SUCCESS(f'Deleted {deleted} audit log(s) older than {days} days'))
