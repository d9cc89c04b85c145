from django.conf import settings
from django.core.cache import cache


def get_client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '')


def is_login_rate_limited(identifier):
    return bool(cache.get(f'login-lock:{identifier}'))


def register_login_failure(identifier):
    """
    Count one rejected assertion from ``identifier`` and return the number of
    failures in the current window. Reaching ``LOGIN_RATE_LIMIT_ATTEMPTS``
    locks the identifier out for ``LOGIN_RATE_LIMIT_LOCK_SECONDS``.
    """
    attempts_key = f'login-attempts:{identifier}'
    lock_key = f'login-lock:{identifier}'
    attempts = cache.get(attempts_key, 0) + 1
    cache.set(attempts_key, attempts, timeout=settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS)
    if attempts >= settings.LOGIN_RATE_LIMIT_ATTEMPTS:
        cache.set(lock_key, True, timeout=settings.LOGIN_RATE_LIMIT_LOCK_SECONDS)
    return attempts


def clear_login_failures(identifier):
    cache.delete(f'login-attempts:{identifier}')
    cache.delete(f'login-lock:{identifier}')
