"""
Create and configure the search indices.

Usage:
    python manage.py init_search_indices [--reindex]
"""
from django.core.management.base import BaseCommand, CommandError

from binventory.search import services


class Command(BaseCommand):
    help = 'Create/configure search indices and optionally reindex all bins and items'

    def add_arguments(self, parser):
        parser.add_argument(
            '--reindex',
            action='store_true',
            help='Push every bin and item document after configuring the indices',
        )

    def handle(self, *args, **options):
        try:
            services.initialize_indices()
            self.stdout.write(self.style.SUCCESS('Search indices initialized'))

            if options['reindex']:
                bins = services.index_all_bins()
                items = services.index_all_items()
                self.stdout.write(self.style.SUCCESS(f'Indexed {bins} bin(s) and {items} item(s)'))
        except services.SearchUnavailable as e:
            raise CommandError(f'Search engine unavailable: {e}')
        except services.SearchFailed as e:
            raise CommandError(f'Search engine error: {e}')
