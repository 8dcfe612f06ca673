from rest_framework import serializers
from binventory.catalog.serializers import ItemSerializer
from .models import Bin, BinItem


class BinSerializer(serializers.ModelSerializer):
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Bin
        fields = [
            'id', 'label', 'location', 'description', 'qr_code', 'image_url',
            'organization', 'item_count', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_item_count(self, obj):
        return obj.contents.count()


class BinWriteSerializer(serializers.Serializer):
    label = serializers.CharField(min_length=1, max_length=100)
    location = serializers.CharField(min_length=1, max_length=200)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class BinItemSerializer(serializers.ModelSerializer):
    item = ItemSerializer(read_only=True)
    bin_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = BinItem
        fields = ['id', 'bin_id', 'item', 'quantity', 'notes', 'added_at']
        read_only_fields = fields


class AddBinItemSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class UpdateBinItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1, required=False)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class RemoveBinItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class BinSearchSerializer(serializers.Serializer):
    q = serializers.CharField(min_length=1)
    location = serializers.CharField(max_length=200, required=False)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
    offset = serializers.IntegerField(min_value=0, default=0)
