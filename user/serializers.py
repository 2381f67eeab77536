from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)

        # Add custom claims
        token['email'] = user.email
        token['full_name'] = user.full_name
        token['role'] = user.role

        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data['email'] = self.user.email
        data['full_name'] = self.user.full_name
        data['role'] = self.user.role
        return data


class UserSerializer(serializers.ModelSerializer):
    """Profile of the authenticated user. Role is not self-editable."""
    password = serializers.CharField(write_only=True, min_length=5, required=False)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'password', 'first_name', 'last_name', 'full_name',
            'phone', 'role', 'occupation', 'emergency_contact', 'date_joined',
        ]
        read_only_fields = ['id', 'role', 'full_name', 'date_joined']

    def update(self, instance, validated_data):
        password = validated_data.pop('password', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        if password:
            instance.set_password(password)
        instance.save()
        return instance


class UserAdminSerializer(serializers.ModelSerializer):
    """Staff-facing serializer for tenants and staff accounts."""
    password = serializers.CharField(write_only=True, min_length=5, required=False)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'password', 'first_name', 'last_name', 'full_name',
            'phone', 'role', 'is_active', 'id_card_number', 'emergency_contact',
            'occupation', 'date_joined',
        ]
        read_only_fields = ['id', 'full_name', 'date_joined']

    def validate_role(self, value):
        request = self.context.get('request')
        if value != User.TENANT and request and request.user.role != User.ADMIN:
            raise serializers.ValidationError("Only admins can create or promote staff accounts.")
        return value

    def create(self, validated_data):
        password = validated_data.pop('password', None)
        user = User(**validated_data)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save()
        return user

    def update(self, instance, validated_data):
        password = validated_data.pop('password', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        if password:
            instance.set_password(password)
        instance.save()
        return instance
