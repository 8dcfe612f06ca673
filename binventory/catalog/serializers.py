from rest_framework import serializers
from .models import Category, Item


class CategorySerializer(serializers.ModelSerializer):
    parent_id = serializers.UUIDField(read_only=True, allow_null=True)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'parent_id', 'path', 'organization', 'item_count', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_item_count(self, obj):
        # Annotated by list_categories; single objects count directly
        if hasattr(obj, 'item_count'):
            return obj.item_count
        return obj.items.count()


class CategoryWriteSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=1, max_length=100)
    parent_id = serializers.UUIDField(required=False, allow_null=True)

    def to_internal_value(self, data):
        # An empty string parent means "make this a root category"
        if hasattr(data, 'copy') and data.get('parent_id') == '':
            data = data.copy()
            data['parent_id'] = None
        return super().to_internal_value(data)


class CategoryBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name']


class ItemSerializer(serializers.ModelSerializer):
    category = CategoryBriefSerializer(read_only=True)
    category_id = serializers.UUIDField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Item
        fields = [
            'id', 'name', 'description', 'category', 'category_id', 'quantity', 'min_quantity',
            'unit', 'is_low_stock', 'organization', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ItemWriteSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=1, max_length=200)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)
    category_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=0, required=False, default=0)
    min_quantity = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    unit = serializers.CharField(min_length=1, max_length=50)
