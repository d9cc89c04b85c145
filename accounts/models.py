import hashlib
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
from django.utils import timezone


class UserManager(BaseUserManager):
    def create_user(self, external_id, password=None, **extra_fields):
        if not external_id:
            raise ValueError('External id is required')
        if extra_fields.get('email'):
            extra_fields['email'] = self.normalize_email(extra_fields['email'])
        user = self.model(external_id=external_id, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, external_id, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        return self.create_user(external_id, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    external_id = models.CharField(max_length=255, unique=True)
    email = models.EmailField(unique=True, null=True, blank=True)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    profile_image_url = models.URLField(max_length=500, blank=True)
    bio = models.TextField(blank=True)
    is_creator = models.BooleanField(default=False)
    total_earnings = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'external_id'
    REQUIRED_FIELDS = []

    def __str__(self):
        return self.email or self.external_id

    @property
    def display_name(self):
        full = f'{self.first_name} {self.last_name}'.strip()
        return full or self.email or self.external_id


class UserSession(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='user_sessions')
    session_token = models.CharField(max_length=128, unique=True)
    expires_at = models.DateTimeField()
    device_info = models.CharField(max_length=255, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @classmethod
    def create_session(cls, user, *, ip_address='', device_info=''):
        raw_token = secrets.token_urlsafe(48)
        expires_at = timezone.now() + timedelta(seconds=settings.TOKEN_SESSION_IDLE_TIMEOUT_SECONDS)
        session = cls.objects.create(
            user=user,
            session_token=cls.digest_token(raw_token),
            expires_at=expires_at,
            ip_address=ip_address or None,
            device_info=device_info[:255],
        )
        return raw_token, session

    @staticmethod
    def digest_token(raw_token):
        return hashlib.sha256(raw_token.encode()).hexdigest()


class Follow(models.Model):
    follower = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='following_set')
    following = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='follower_set')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('follower', 'following')

    def __str__(self):
        return f'{self.follower_id}->{self.following_id}'
