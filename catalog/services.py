"""
Catalog and engagement store.

Every operation here takes plain values (ids, dicts, user instances) and
returns model instances or small dicts, raising the kinds defined in
``catalog.exceptions``. Each counter mutation shares one transaction with
the row change that triggers it, with the owning row locked for the
duration, so ``like_count`` and ``comment_count`` track their junction rows
exactly.
"""

import logging
import time
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Count, DecimalField, F, Q, Sum
from django.db.models.functions import Coalesce, Greatest

from accounts.models import Follow

from . import payments
from .exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .forms import BookForm, ChapterForm, CommentForm, MediaForm, RatingForm, form_errors, merge_partial
from .models import Book, Bookmark, Chapter, Comment, Like, Media, Purchase, Rating

logger = logging.getLogger(__name__)

User = get_user_model()

SORT_ORDERS = {
    'latest': ('-created_at', '-id'),
    'popular': ('-view_count', '-created_at', '-id'),
    'rating': ('-rating', '-created_at', '-id'),
}

MEDIA_FLAGS = {
    Media.Type.IMAGE: 'has_images',
    Media.Type.AUDIO: 'has_audio',
    Media.Type.VIDEO: 'has_video',
}


def _page_limit(limit, default):
    if limit is None:
        return default
    return max(1, min(int(limit), settings.CATALOG_MAX_PAGE_SIZE))


def _get_book(book_id, *, lock=False):
    queryset = Book.objects.select_for_update() if lock else Book.objects.all()
    book = queryset.filter(id=book_id).first()
    if not book:
        raise NotFoundError('Book not found.')
    return book


def _get_visible_book(book_id, viewer, *, lock=False):
    """Like ``_get_book``, but drafts exist only for their author."""
    book = _get_book(book_id, lock=lock)
    if not book.is_published and (viewer is None or viewer.id != book.author_id):
        raise NotFoundError('Book not found.')
    return book


def _require_author(book, user, action):
    if book.author_id != user.id:
        logger.warning('User %s refused %s on book %s owned by %s', user.id, action, book.id, book.author_id)
        raise ForbiddenError(f'Not authorized to {action} this book.')


# Catalog queries


def list_books(
    *,
    genre=None,
    search=None,
    author_id=None,
    is_published=True,
    is_mature=None,
    has_video=None,
    has_audio=None,
    has_images=None,
    sort_by='latest',
    limit=None,
    offset=0,
):
    books = Book.objects.select_related('author').filter(is_published=is_published)
    if genre:
        books = books.filter(genre=genre)
    if author_id:
        books = books.filter(author_id=author_id)
    if search:
        books = books.filter(Q(title__icontains=search) | Q(description__icontains=search))
    for field, value in (('is_mature', is_mature), ('has_video', has_video), ('has_audio', has_audio), ('has_images', has_images)):
        if value is not None:
            books = books.filter(**{field: value})

    ordering = SORT_ORDERS.get(sort_by, SORT_ORDERS['latest'])
    limit = _page_limit(limit, settings.CATALOG_DEFAULT_PAGE_SIZE)
    offset = max(0, int(offset or 0))
    return list(books.order_by(*ordering)[offset:offset + limit])


def get_trending_books(limit=None):
    limit = _page_limit(limit, settings.TRENDING_DEFAULT_LIMIT)
    books = Book.objects.select_related('author').filter(is_published=True)
    return list(books.order_by('-view_count', '-like_count', '-created_at', '-id')[:limit])


def get_book_detail(book_id, viewer=None):
    book = (
        Book.objects.select_related('author')
        .prefetch_related('chapters', 'media', 'comments__user')
        .filter(id=book_id)
        .first()
    )
    if not book:
        raise NotFoundError('Book not found.')
    if not book.is_published and (viewer is None or viewer.id != book.author_id):
        raise NotFoundError('Book not found.')
    return book


def _view_bucket_key(book_id, viewer_key, window):
    bucket = int(time.time()) // window
    return f'book-view:{book_id}:{viewer_key}:{bucket}'


def record_book_view(book, viewer_key=None):
    """
    Count one view of ``book`` and return the new ``view_count``.

    With a dedup window configured, repeat views by the same viewer inside
    one time bucket are not counted.
    """
    window = settings.BOOK_VIEW_DEDUP_WINDOW_SECONDS
    if window > 0 and viewer_key:
        if not cache.add(_view_bucket_key(book.id, viewer_key, window), True, timeout=window):
            return book.view_count
    Book.objects.filter(id=book.id).update(view_count=F('view_count') + 1)
    book.refresh_from_db(fields=['view_count'])
    return book.view_count


def get_book_chapters(book_id, viewer=None):
    book = _get_visible_book(book_id, viewer)
    return list(book.chapters.all())


def get_book_comments(book_id, viewer=None):
    _get_visible_book(book_id, viewer)
    return list(Comment.objects.filter(book_id=book_id).select_related('user').order_by('-created_at', '-id'))


def get_user_bookmarks(user):
    rows = Bookmark.objects.filter(user=user).select_related('book__author').order_by('-created_at', '-id')
    return [row.book for row in rows]


def get_user_purchases(user):
    rows = Purchase.objects.filter(user=user).select_related('book__author').order_by('-created_at', '-id')
    return [row.book for row in rows]


# Ownership-gated mutations


def create_book(author, data):
    form = BookForm(data)
    if not form.is_valid():
        raise ValidationError('Invalid book data.', errors=form_errors(form))
    with transaction.atomic():
        book = form.save(commit=False)
        book.author = author
        book.save()
        if not author.is_creator:
            User.objects.filter(id=author.id).update(is_creator=True)
            author.is_creator = True
    logger.info('Book %s created by user %s', book.id, author.id)
    return book


def update_book(book_id, author, data):
    with transaction.atomic():
        book = _get_book(book_id, lock=True)
        _require_author(book, author, 'edit')
        form = BookForm(merge_partial(book, data, BookForm.Meta.fields), instance=book)
        if not form.is_valid():
            raise ValidationError('Invalid book data.', errors=form_errors(form))
        return form.save()


def delete_book(book_id, author):
    with transaction.atomic():
        book = _get_book(book_id, lock=True)
        _require_author(book, author, 'delete')
        if Purchase.objects.filter(book=book).exists():
            logger.warning('Refused to delete book %s: it has purchases', book.id)
            raise ConflictError('Book has purchases and cannot be deleted. Unpublish it instead.')
        book.delete()
    logger.info('Book %s deleted by user %s', book_id, author.id)


def _get_owned_chapter(chapter_id, author, action):
    chapter = Chapter.objects.select_related('book').filter(id=chapter_id).first()
    if not chapter:
        raise NotFoundError('Chapter not found.')
    _require_author(chapter.book, author, action)
    return chapter


def _save_chapter(form):
    try:
        with transaction.atomic():
            return form.save()
    except IntegrityError as exc:
        raise ValidationError('Invalid chapter data.', errors={'order_index': ['A chapter with this order already exists.']}) from exc


def create_chapter(book_id, author, data):
    book = _get_book(book_id)
    _require_author(book, author, 'add chapters to')
    form = ChapterForm(data, instance=Chapter(book=book))
    if not form.is_valid():
        raise ValidationError('Invalid chapter data.', errors=form_errors(form))
    return _save_chapter(form)


def update_chapter(chapter_id, author, data):
    chapter = _get_owned_chapter(chapter_id, author, 'edit chapters of')
    form = ChapterForm(merge_partial(chapter, data, ChapterForm.Meta.fields), instance=chapter)
    if not form.is_valid():
        raise ValidationError('Invalid chapter data.', errors=form_errors(form))
    return _save_chapter(form)


def delete_chapter(chapter_id, author):
    chapter = _get_owned_chapter(chapter_id, author, 'delete chapters of')
    chapter.delete()


def create_media(author, data):
    form = MediaForm(data)
    if not form.is_valid():
        raise ValidationError('Invalid media data.', errors=form_errors(form))
    chapter = None
    book_id = form.cleaned_data.get('book_id')
    if form.cleaned_data.get('chapter_id'):
        chapter = _get_owned_chapter(form.cleaned_data['chapter_id'], author, 'attach media to')
        if book_id and book_id != chapter.book_id:
            raise ValidationError('Invalid media data.', errors={'chapter_id': ['Chapter belongs to another book.']})
        book_id = chapter.book_id
    with transaction.atomic():
        book = _get_book(book_id, lock=True)
        _require_author(book, author, 'attach media to')
        media = form.save(commit=False)
        media.book = book
        media.chapter = chapter
        media.save()
        flag = MEDIA_FLAGS[media.media_type]
        if not getattr(book, flag):
            setattr(book, flag, True)
            book.save(update_fields=[flag, 'updated_at'])
    return media


def delete_media(media_id, author):
    media = Media.objects.select_related('book', 'chapter__book').filter(id=media_id).first()
    if not media:
        raise NotFoundError('Media not found.')
    book = media.book or media.chapter.book
    _require_author(book, author, 'remove media from')
    flag = MEDIA_FLAGS[media.media_type]
    with transaction.atomic():
        book = _get_book(book.id, lock=True)
        media.delete()
        remaining = Media.objects.filter(Q(book=book) | Q(chapter__book=book), media_type=media.media_type).exists()
        if getattr(book, flag) != remaining:
            setattr(book, flag, remaining)
            book.save(update_fields=[flag, 'updated_at'])


# Engagement


def toggle_like(user, book_id):
    with transaction.atomic():
        book = _get_visible_book(book_id, user, lock=True)
        deleted, _ = Like.objects.filter(user=user, book=book).delete()
        if deleted:
            Book.objects.filter(id=book.id).update(like_count=Greatest(F('like_count') - 1, 0))
        else:
            Like.objects.create(user=user, book=book)
            Book.objects.filter(id=book.id).update(like_count=F('like_count') + 1)
        book.refresh_from_db(fields=['like_count'])
    return {'liked': not deleted, 'like_count': book.like_count}


def toggle_bookmark(user, book_id):
    with transaction.atomic():
        book = _get_visible_book(book_id, user, lock=True)
        deleted, _ = Bookmark.objects.filter(user=user, book=book).delete()
        if not deleted:
            Bookmark.objects.create(user=user, book=book)
    return {'bookmarked': not deleted}


def toggle_follow(follower, following_id):
    if str(follower.id) == str(following_id):
        raise ValidationError('Cannot follow yourself.', errors={'following_id': ['Cannot follow yourself.']})
    with transaction.atomic():
        following = User.objects.select_for_update().filter(id=following_id, is_active=True).first()
        if not following:
            raise NotFoundError('User not found.')
        deleted, _ = Follow.objects.filter(follower=follower, following=following).delete()
        if not deleted:
            Follow.objects.create(follower=follower, following=following)
    return {'following': not deleted}


def create_comment(user, book_id, data):
    form = CommentForm(data)
    if not form.is_valid():
        raise ValidationError('Invalid comment data.', errors=form_errors(form))
    with transaction.atomic():
        book = _get_visible_book(book_id, user, lock=True)
        comment = Comment.objects.create(user=user, book=book, content=form.cleaned_data['content'])
        Book.objects.filter(id=book.id).update(comment_count=F('comment_count') + 1)
    comment.user = user
    return comment


def delete_comment(comment_id, user):
    """Remove a comment; allowed for its writer and for the book's author."""
    with transaction.atomic():
        comment = Comment.objects.select_related('book').filter(id=comment_id).first()
        if not comment:
            raise NotFoundError('Comment not found.')
        if user.id not in (comment.user_id, comment.book.author_id):
            raise ForbiddenError('Not authorized to delete this comment.')
        _get_book(comment.book_id, lock=True)
        deleted, _ = Comment.objects.filter(id=comment.id).delete()
        if deleted:
            Book.objects.filter(id=comment.book_id).update(comment_count=Greatest(F('comment_count') - 1, 0))


def rate_book(user, book_id, data):
    form = RatingForm(data)
    if not form.is_valid():
        raise ValidationError('Invalid rating.', errors=form_errors(form))
    with transaction.atomic():
        book = _get_visible_book(book_id, user, lock=True)
        Rating.objects.update_or_create(user=user, book=book, defaults={'score': form.cleaned_data['score']})
        book.rating, book.rating_count = Rating.aggregate_for(book.id)
        book.save(update_fields=['rating', 'rating_count'])
    return {'score': form.cleaned_data['score'], 'rating': str(book.rating), 'rating_count': book.rating_count}


# Purchases


def has_purchased(user, book):
    if user is None or not user.is_authenticated:
        return False
    return Purchase.objects.filter(user=user, book=book).exists()


def can_access_full_content(user, book):
    if book.is_free:
        return True
    if user is None or not user.is_authenticated:
        return False
    return user.id == book.author_id or has_purchased(user, book)


def _get_purchasable_book(user, book_id, *, quoting=True):
    book = _get_book(book_id)
    if not book.is_published:
        raise NotFoundError('Book not found.')
    if book.author_id == user.id:
        raise ValidationError('Authors cannot buy their own books.', errors={'book_id': ['You wrote this book.']})
    if quoting and book.is_free:
        raise ValidationError('Free books do not need a purchase.', errors={'book_id': ['Book is free.']})
    if has_purchased(user, book):
        logger.warning('User %s tried to buy book %s twice', user.id, book.id)
        raise ConflictError('Book already purchased.')
    return book


def create_payment_intent(user, book_id):
    book = _get_purchasable_book(user, book_id)
    return payments.create_payment_intent(book, user)


def create_purchase(user, book_id, payment_intent_id):
    """
    Record a verified payment. Amount and author earnings come from what the
    processor charged, which may differ from the current price.
    """
    book = _get_purchasable_book(user, book_id, quoting=False)
    amount = payments.verify_payment_intent(payment_intent_id, book, user)
    try:
        with transaction.atomic():
            book = _get_book(book_id, lock=True)
            purchase = Purchase.objects.create(user=user, book=book, amount=amount, payment_intent_id=payment_intent_id)
            User.objects.filter(id=book.author_id).update(total_earnings=F('total_earnings') + amount)
    except IntegrityError as exc:
        logger.warning('Concurrent purchase of book %s by user %s rejected', book_id, user.id)
        raise ConflictError('Book already purchased.') from exc
    logger.info('Purchase %s recorded: user %s book %s amount %s', purchase.id, user.id, book.id, purchase.amount)
    return purchase


def get_viewer_state(user, book):
    """Per-caller flags shown alongside a book."""
    if user is None or not user.is_authenticated:
        return {'has_access': can_access_full_content(user, book), 'is_liked': False, 'is_bookmarked': False, 'is_purchased': False}
    purchased = has_purchased(user, book)
    return {
        'has_access': book.is_free or user.id == book.author_id or purchased,
        'is_liked': Like.objects.filter(user=user, book=book).exists(),
        'is_bookmarked': Bookmark.objects.filter(user=user, book=book).exists(),
        'is_purchased': purchased,
    }


# Statistics


def get_user_stats(user_id):
    user = User.objects.filter(id=user_id).first()
    if not user:
        raise NotFoundError('User not found.')
    return {
        'books_count': Book.objects.filter(author=user, is_published=True).count(),
        'followers_count': Follow.objects.filter(following=user).count(),
        'following_count': Follow.objects.filter(follower=user).count(),
        'total_earnings': str(user.total_earnings),
    }


def get_book_stats(book_id, viewer=None):
    book = _get_visible_book(book_id, viewer)
    return {
        'book_id': book.id,
        'view_count': book.view_count,
        'like_count': book.like_count,
        'comment_count': book.comment_count,
        'rating': str(book.rating),
        'rating_count': book.rating_count,
        'bookmark_count': Bookmark.objects.filter(book=book).count(),
        'purchase_count': Purchase.objects.filter(book=book).count(),
    }


# Reconciliation


def reconcile_counters(dry_run=False):
    """
    Recompute denormalized counters from their source rows.

    Returns a list of ``(model, id, field, stored, actual)`` tuples for every
    value that had drifted. With ``dry_run`` nothing is written.
    """
    drift = []
    books = Book.objects.annotate(
        actual_likes=Count('likes', distinct=True),
        actual_comments=Count('comments', distinct=True),
    )
    for book in books.iterator():
        actual_rating, actual_rating_count = Rating.aggregate_for(book.id)
        expected = {
            'like_count': book.actual_likes,
            'comment_count': book.actual_comments,
            'rating': actual_rating,
            'rating_count': actual_rating_count,
        }
        changed = {field: value for field, value in expected.items() if getattr(book, field) != value}
        for field, value in changed.items():
            drift.append(('book', book.id, field, getattr(book, field), value))
        if changed and not dry_run:
            Book.objects.filter(id=book.id).update(**changed)

    authors = User.objects.annotate(
        actual_earnings=Coalesce(
            Sum('books__purchases__amount'),
            Decimal('0.00'),
            output_field=DecimalField(max_digits=10, decimal_places=2),
        ),
    )
    for author in authors.iterator():
        if author.total_earnings != author.actual_earnings:
            drift.append(('user', author.id, 'total_earnings', author.total_earnings, author.actual_earnings))
            if not dry_run:
                User.objects.filter(id=author.id).update(total_earnings=author.actual_earnings)

    if drift:
        logger.warning('Counter reconciliation found %d drifted values (dry_run=%s)', len(drift), dry_run)
    return drift
