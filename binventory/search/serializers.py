from rest_framework import serializers

SEARCH_TYPES = {
    'all': ['items', 'bins'],
    'item': ['items'],
    'bin': ['bins'],
}


class SearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(min_length=1, max_length=200)
    type = serializers.ChoiceField(choices=list(SEARCH_TYPES), default='all')
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
    offset = serializers.IntegerField(min_value=0, default=0)


class TypeaheadQuerySerializer(serializers.Serializer):
    q = serializers.CharField(allow_blank=True, max_length=200, default='')


class InitIndicesSerializer(serializers.Serializer):
    reindex = serializers.BooleanField(default=False)
