from decimal import Decimal
from types import SimpleNamespace

from accounts.models import User, UserSession
from catalog.models import Book, Chapter


def make_user(external_id, **extra):
    return User.objects.create_user(external_id, email=extra.pop('email', f'{external_id}@example.com'), **extra)


def make_book(author, title='A Book', **extra):
    extra.setdefault('genre', 'fantasy')
    extra.setdefault('is_published', True)
    extra.setdefault('price', Decimal('0.00'))
    return Book.objects.create(author=author, title=title, **extra)


def make_chapter(book, order_index=1, content='one two three', **extra):
    return Chapter.objects.create(book=book, order_index=order_index, title=f'Chapter {order_index}', content=content, **extra)


def auth_headers(user):
    raw_token, _ = UserSession.create_session(user)
    return {'HTTP_AUTHORIZATION': f'Bearer {raw_token}'}


def fake_intent(book, user, **overrides):
    """Stand-in for a retrieved processor intent that paid for ``book``."""
    quoted = int(book.price * 100)
    values = {
        'id': 'pi_test_123',
        'status': 'succeeded',
        'amount': quoted,
        'currency': 'usd',
        'client_secret': 'pi_test_123_secret_abc',
        'metadata': {'book_id': str(book.id), 'user_id': str(user.id), 'amount': str(quoted)},
    }
    values.update(overrides)
    return SimpleNamespace(**values)
