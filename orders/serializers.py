"""
Orders App Serializers
"""

from rest_framework import serializers

from .models import Order, PaymentMethod


class OrderItemSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)


class OrderSerializer(serializers.ModelSerializer):
    """Full serializer for Order model (read only, writes go through lifecycle)."""

    customer_name = serializers.CharField(source='customer.name', read_only=True)
    courier_name = serializers.CharField(source='courier.name', read_only=True, default=None)
    customer_location = serializers.SerializerMethodField()
    courier_location = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'description', 'items', 'total', 'payment_method', 'status',
            'customer', 'customer_name', 'courier', 'courier_name',
            'delivery_address', 'customer_location', 'courier_location',
            'courier_location_updated_at',
            'created_at', 'updated_at', 'accepted_at', 'delivered_at', 'cancelled_at',
        ]
        read_only_fields = fields

    def get_customer_location(self, obj):
        location = obj.customer_location
        return location.to_dict() if location else None

    def get_courier_location(self, obj):
        location = obj.courier_location
        return location.to_dict() if location else None


class OrderCreateSerializer(serializers.Serializer):
    """Payload for POST /api/orders/."""

    description = serializers.CharField()
    items = OrderItemSerializer(many=True, required=False)
    total = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    delivery_address = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    customer_latitude = serializers.FloatField(min_value=-90, max_value=90, required=False)
    customer_longitude = serializers.FloatField(min_value=-180, max_value=180, required=False)

    def validate_description(self, value):
        if not value.strip():
            raise serializers.ValidationError('La descripción del pedido es obligatoria.')
        return value.strip()

    def validate(self, data):
        has_lat = data.get('customer_latitude') is not None
        has_lng = data.get('customer_longitude') is not None
        if has_lat != has_lng:
            raise serializers.ValidationError(
                "Debes indicar latitud y longitud de entrega, o ninguna."
            )
        return data
