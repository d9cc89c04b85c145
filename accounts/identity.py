"""
Identity provider assertions.

The login handshake itself happens at the identity provider. What reaches
this service is a signed, short-lived assertion carrying the provider's
claims about the caller: ``sub`` plus optional ``email``, ``first_name``,
``last_name`` and ``profile_image_url``.
"""

from django.conf import settings
from django.core import signing

from catalog.exceptions import UnauthenticatedError

ASSERTION_SALT = 'identity-assertion'
CLAIM_FIELDS = ('email', 'first_name', 'last_name', 'profile_image_url')


def make_identity_assertion(claims: dict) -> str:
    return signing.TimestampSigner(salt=ASSERTION_SALT).sign_object(claims)


def read_identity_assertion(token: str, max_age_seconds: int | None = None) -> dict:
    if max_age_seconds is None:
        max_age_seconds = settings.IDENTITY_ASSERTION_MAX_AGE_SECONDS
    try:
        claims = signing.TimestampSigner(salt=ASSERTION_SALT).unsign_object(token, max_age=max_age_seconds)
    except signing.BadSignature as exc:
        raise UnauthenticatedError('Invalid or expired identity assertion.') from exc
    if not isinstance(claims, dict) or not str(claims.get('sub') or '').strip():
        raise UnauthenticatedError('Identity assertion has no subject.')
    return claims
