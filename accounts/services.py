import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from catalog.exceptions import NotFoundError, ValidationError
from catalog.forms import form_errors

from .forms import ProfileUpdateForm
from .identity import CLAIM_FIELDS

logger = logging.getLogger(__name__)

User = get_user_model()


def get_user(user_id):
    user = User.objects.filter(id=user_id, is_active=True).first()
    if not user:
        raise NotFoundError('User not found.')
    return user


def upsert_user(claims):
    """
    Create the user on first sight, otherwise refresh the profile claims.

    Claims are an external fact feed: replaying the same claims leaves the
    row unchanged apart from ``updated_at``. Claims the provider leaves out
    keep their stored value.
    """
    external_id = str(claims['sub']).strip()
    defaults = {field: str(claims[field] or '').strip() for field in CLAIM_FIELDS if field in claims}
    if 'email' in defaults:
        defaults['email'] = User.objects.normalize_email(defaults['email']) or None
    try:
        with transaction.atomic():
            user, created = User.objects.update_or_create(external_id=external_id, defaults=defaults)
    except IntegrityError as exc:
        # email is unique across users
        raise ValidationError('Email already belongs to another account.', errors={'email': ['Already in use.']}) from exc
    if created:
        user.set_unusable_password()
        user.save(update_fields=['password'])
        logger.info('Created user %s for external id %s', user.id, external_id)
    return user, created


def update_profile(user, data):
    form = ProfileUpdateForm(data)
    if not form.is_valid():
        raise ValidationError('Invalid profile data.', errors=form_errors(form))
    changed = []
    for field, value in form.cleaned_data.items():
        if field not in data:
            continue
        setattr(user, field, value)
        changed.append(field)
    if changed:
        user.save(update_fields=changed + ['updated_at'])
    return user
