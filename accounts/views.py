import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from catalog import serializers
from catalog.exceptions import UnauthenticatedError, ValidationError
from catalog.http import json_endpoint, request_payload, require_user

from .identity import read_identity_assertion
from .models import UserSession
from .services import update_profile, upsert_user
from .utils import clear_login_failures, get_client_ip, is_login_rate_limited, register_login_failure

logger = logging.getLogger(__name__)


@require_POST
@json_endpoint
def login_view(request):
    ip = get_client_ip(request)
    if is_login_rate_limited(ip):
        logger.warning('Login rate limited for %s', ip)
        return JsonResponse({'error': 'Too many attempts. Please try again later.'}, status=429)

    assertion = str(request_payload(request).get('assertion') or '').strip()
    if not assertion:
        raise ValidationError('Missing identity assertion.', errors={'assertion': ['This field is required.']})
    try:
        claims = read_identity_assertion(assertion)
    except UnauthenticatedError:
        attempts = register_login_failure(ip)
        logger.warning('Rejected identity assertion from %s (%d in window)', ip, attempts)
        raise

    clear_login_failures(ip)
    user, created = upsert_user(claims)
    raw_token, session = UserSession.create_session(
        user,
        ip_address=ip,
        device_info=request.META.get('HTTP_USER_AGENT', ''),
    )
    response = JsonResponse(
        {'token': raw_token, 'expires_at': session.expires_at.isoformat(), 'created': created, 'user': serializers.user_profile(user)},
        status=201 if created else 200,
    )
    response.set_cookie('session_token', raw_token, secure=request.is_secure(), httponly=True, samesite='Lax')
    return response


@require_POST
def logout_view(request):
    session = getattr(request, 'authenticated_session', None)
    if session:
        session.delete()
    response = JsonResponse({'logged_out': True})
    response.delete_cookie('session_token')
    return response


@require_GET
@json_endpoint
def current_user(request):
    return JsonResponse(serializers.user_profile(require_user(request)))


@require_POST
@json_endpoint
def profile(request):
    user = update_profile(require_user(request), request_payload(request))
    return JsonResponse(serializers.user_profile(user))
