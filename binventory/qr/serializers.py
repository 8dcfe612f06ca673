from rest_framework import serializers


class GenerateQRCodeSerializer(serializers.Serializer):
    binId = serializers.UUIDField()
    format = serializers.ChoiceField(choices=['svg', 'png'], default='svg')


class ValidateQRCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=500)


class LabelOptionsSerializer(serializers.Serializer):
    barcode = serializers.BooleanField(default=True)
