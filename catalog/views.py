from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from accounts.utils import get_client_ip

from . import serializers, services
from .exceptions import ForbiddenError, ValidationError
from .forms import PaymentIntentForm, PurchaseForm, form_errors
from .http import auth_user, json_endpoint, parse_bool, parse_int, request_payload, require_user
from .models import Genre


def _viewer_key(request, user):
    if user:
        return f'user:{user.id}'
    return f'ip:{get_client_ip(request)}'


@require_http_methods(['GET', 'POST'])
@json_endpoint
def books_collection(request):
    if request.method == 'POST':
        user = require_user(request)
        book = services.create_book(user, request_payload(request))
        return JsonResponse(serializers.book_summary(book), status=201)

    params = request.GET
    genre = params.get('genre', '').strip() or None
    if genre and genre not in Genre.values:
        raise ValidationError('Unknown genre.', errors={'genre': [f'Must be one of: {", ".join(Genre.values)}.']})
    sort_by = params.get('sort_by', 'latest').strip().lower() or 'latest'
    if sort_by not in services.SORT_ORDERS:
        raise ValidationError('Unknown sort order.', errors={'sort_by': ['Must be latest, popular or rating.']})
    author_id = parse_int(params, 'author_id', minimum=1)

    is_published = parse_bool(params, 'is_published')
    if is_published is None:
        is_published = True
    if not is_published:
        user = auth_user(request)
        if not user or user.id != author_id:
            raise ForbiddenError('Only authors can list their unpublished books.')

    books = services.list_books(
        genre=genre,
        search=params.get('search', '').strip() or None,
        author_id=author_id,
        is_published=is_published,
        is_mature=parse_bool(params, 'is_mature'),
        has_video=parse_bool(params, 'has_video'),
        has_audio=parse_bool(params, 'has_audio'),
        has_images=parse_bool(params, 'has_images'),
        sort_by=sort_by,
        limit=parse_int(params, 'limit', minimum=1),
        offset=parse_int(params, 'offset', default=0),
    )
    return JsonResponse({'results': [serializers.book_summary(b) for b in books]})


@require_GET
@json_endpoint
def trending_books(request):
    books = services.get_trending_books(parse_int(request.GET, 'limit', minimum=1))
    return JsonResponse({'results': [serializers.book_summary(b) for b in books]})


@require_http_methods(['GET', 'POST', 'PATCH', 'PUT', 'DELETE'])
@json_endpoint
def book_resource(request, book_id):
    if request.method == 'DELETE':
        services.delete_book(book_id, require_user(request))
        return JsonResponse({'deleted': True})
    if request.method != 'GET':
        book = services.update_book(book_id, require_user(request), request_payload(request))
        return JsonResponse(serializers.book_summary(book))

    user = auth_user(request)
    book = services.get_book_detail(book_id, viewer=user)
    services.record_book_view(book, _viewer_key(request, user))
    return JsonResponse(serializers.book_detail(book, **services.get_viewer_state(user, book)))


@require_GET
@json_endpoint
def book_stats(request, book_id):
    return JsonResponse(services.get_book_stats(book_id, viewer=auth_user(request)))


@require_http_methods(['GET', 'POST'])
@json_endpoint
def book_chapters(request, book_id):
    if request.method == 'POST':
        chapter = services.create_chapter(book_id, require_user(request), request_payload(request))
        return JsonResponse(serializers.chapter(chapter), status=201)
    user = auth_user(request)
    book = services.get_book_detail(book_id, viewer=user)
    has_access = services.can_access_full_content(user, book)
    return JsonResponse({'chapters': [serializers.chapter(c, include_content=has_access) for c in services.get_book_chapters(book.id, viewer=user)]})


@require_http_methods(['POST', 'PATCH', 'PUT', 'DELETE'])
@json_endpoint
def chapter_resource(request, chapter_id):
    user = require_user(request)
    if request.method == 'DELETE':
        services.delete_chapter(chapter_id, user)
        return JsonResponse({'deleted': True})
    chapter = services.update_chapter(chapter_id, user, request_payload(request))
    return JsonResponse(serializers.chapter(chapter))


@require_POST
@json_endpoint
def media_collection(request):
    media = services.create_media(require_user(request), request_payload(request))
    return JsonResponse(serializers.media(media), status=201)


@require_http_methods(['DELETE'])
@json_endpoint
def media_resource(request, media_id):
    services.delete_media(media_id, require_user(request))
    return JsonResponse({'deleted': True})


@require_POST
@json_endpoint
def toggle_like(request, book_id):
    return JsonResponse(services.toggle_like(require_user(request), book_id))


@require_POST
@json_endpoint
def toggle_bookmark(request, book_id):
    return JsonResponse(services.toggle_bookmark(require_user(request), book_id))


@require_POST
@json_endpoint
def rate_book(request, book_id):
    return JsonResponse(services.rate_book(require_user(request), book_id, request_payload(request)))


@require_http_methods(['GET', 'POST'])
@json_endpoint
def book_comments(request, book_id):
    if request.method == 'POST':
        comment = services.create_comment(require_user(request), book_id, request_payload(request))
        return JsonResponse(serializers.comment(comment), status=201)
    return JsonResponse({'comments': [serializers.comment(c) for c in services.get_book_comments(book_id, viewer=auth_user(request))]})


@require_http_methods(['DELETE'])
@json_endpoint
def comment_resource(request, comment_id):
    services.delete_comment(comment_id, require_user(request))
    return JsonResponse({'deleted': True})


@require_POST
@json_endpoint
def create_payment_intent(request):
    user = require_user(request)
    form = PaymentIntentForm(request_payload(request))
    if not form.is_valid():
        raise ValidationError('Invalid payment request.', errors=form_errors(form))
    intent = services.create_payment_intent(user, form.cleaned_data['book_id'])
    return JsonResponse({'client_secret': intent['client_secret']})


@require_POST
@json_endpoint
def create_purchase(request):
    user = require_user(request)
    form = PurchaseForm(request_payload(request))
    if not form.is_valid():
        raise ValidationError('Invalid purchase data.', errors=form_errors(form))
    purchase = services.create_purchase(user, form.cleaned_data['book_id'], form.cleaned_data['payment_intent_id'])
    return JsonResponse(serializers.purchase(purchase), status=201)


@require_GET
@json_endpoint
def user_stats(request, user_id):
    return JsonResponse(services.get_user_stats(user_id))


@require_GET
@json_endpoint
def user_books(request, user_id):
    books = services.list_books(
        author_id=user_id,
        limit=parse_int(request.GET, 'limit', minimum=1),
        offset=parse_int(request.GET, 'offset', default=0),
    )
    return JsonResponse({'results': [serializers.book_summary(b) for b in books]})


def _require_self(request, user_id, what):
    user = require_user(request)
    if user.id != user_id:
        raise ForbiddenError(f'Not authorized to view these {what}.')
    return user


@require_GET
@json_endpoint
def user_bookmarks(request, user_id):
    user = _require_self(request, user_id, 'bookmarks')
    return JsonResponse({'results': [serializers.book_summary(b) for b in services.get_user_bookmarks(user)]})


@require_GET
@json_endpoint
def user_purchases(request, user_id):
    user = _require_self(request, user_id, 'purchases')
    return JsonResponse({'results': [serializers.book_summary(b) for b in services.get_user_purchases(user)]})


@require_POST
@json_endpoint
def toggle_follow(request, user_id):
    return JsonResponse(services.toggle_follow(require_user(request), user_id))
