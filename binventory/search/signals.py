"""
Typeahead results are cached per user and query; a bin or item write drops
its owner's cached suggestions.
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from binventory.bins.models import Bin
from binventory.catalog.models import Item
from binventory.core.cache_utils import invalidate_scope


@receiver(post_save, sender=Bin)
@receiver(post_delete, sender=Bin)
@receiver(post_save, sender=Item)
@receiver(post_delete, sender=Item)
def invalidate_typeahead_cache(sender, instance, **kwargs):
    invalidate_scope("typeahead", instance.user_id)
