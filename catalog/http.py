import functools
import json
import logging

from django.http import JsonResponse, QueryDict

from .exceptions import StorefrontError, UnauthenticatedError, ValidationError

logger = logging.getLogger(__name__)

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off')


def error_response(exc):
    body = {'error': exc.message or exc.__class__.__name__}
    if exc.errors:
        body['errors'] = exc.errors
    return JsonResponse(body, status=exc.status_code)


def json_endpoint(view):
    """Turn store errors raised by ``view`` into JSON error responses."""

    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except StorefrontError as exc:
            if exc.status_code >= 500:
                logger.error('%s %s failed: %s', request.method, request.path, exc.message)
            return error_response(exc)

    return wrapper


def request_payload(request):
    """JSON body when the request sends one, otherwise url-encoded form fields."""
    if request.content_type == 'application/json':
        if not request.body:
            return {}
        try:
            payload = json.loads(request.body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError('Malformed JSON body.') from exc
        if not isinstance(payload, dict):
            raise ValidationError('JSON body must be an object.')
        return payload
    if request.method == 'POST':
        return request.POST.dict()
    # Django only parses form bodies for POST.
    if request.content_type == 'application/x-www-form-urlencoded':
        return QueryDict(request.body, encoding=request.encoding).dict()
    if request.body:
        raise ValidationError(f'Unsupported content type for {request.method}: {request.content_type}.')
    return {}


def auth_user(request):
    session = getattr(request, 'authenticated_session', None)
    if session:
        return session.user
    return None


def require_user(request):
    user = auth_user(request)
    if not user:
        raise UnauthenticatedError('Authentication required.')
    return user


def parse_bool(params, name):
    """``True``/``False`` for recognised flag strings, ``None`` when absent."""
    value = params.get(name)
    if value is None or value == '':
        return None
    lowered = str(value).strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValidationError('Invalid boolean flag.', errors={name: [f'Expected true or false, got {value!r}.']})


def parse_int(params, name, default=None, minimum=0):
    raw = params.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError('Invalid number.', errors={name: ['Must be an integer.']}) from exc
    if value < minimum:
        raise ValidationError('Invalid number.', errors={name: [f'Must be at least {minimum}.']})
    return value
