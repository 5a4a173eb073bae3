"""
CORE App - Custom User Model for DysaEats

Handles: Users (Customers, Couriers, Admins)
"""

import uuid
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models

from .rut import format_tax_id, validate_tax_id


class UserRole(models.TextChoices):
    """User role enumeration."""
    CUSTOMER = 'CUSTOMER', 'Cliente'
    COURIER = 'COURIER', 'Repartidor'
    ADMIN = 'ADMIN', 'Administrador'


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('El correo electrónico es obligatorio')

        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as login identifier.

    Key Business Logic:
    - role decides which order transitions the user may perform
    - tax_id (RUT) is stored formatted as "body-dv"
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, verbose_name="Correo electrónico")

    # Profile
    name = models.CharField(max_length=150, blank=True, verbose_name="Nombre")
    photo_url = models.URLField(max_length=500, blank=True, verbose_name="Foto de perfil")
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
        db_index=True,
        verbose_name="Rol"
    )
    phone = models.CharField(max_length=20, blank=True, verbose_name="Teléfono")
    address = models.CharField(max_length=255, blank=True, verbose_name="Dirección")
    tax_id = models.CharField(
        max_length=12,
        blank=True,
        verbose_name="RUT",
        help_text="Ej: 12345678-5"
    )
    internal_code = models.CharField(
        max_length=50,
        blank=True,
        verbose_name="Código interno",
        help_text="Uso administrativo"
    )

    # Django Auth Fields
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(auto_now_add=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = "Usuario"
        verbose_name_plural = "Usuarios"
        ordering = ['-date_joined']

    def __str__(self):
        return f"{self.name or self.email} ({self.role})"

    def clean(self):
        super().clean()
        if self.tax_id:
            self.tax_id = format_tax_id(self.tax_id)
            validate_tax_id(self.tax_id)

    @property
    def is_courier(self) -> bool:
        return self.role == UserRole.COURIER

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER

    @property
    def is_admin_role(self) -> bool:
        return self.role == UserRole.ADMIN
