from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from catalog import services
from catalog.models import Book, Comment, Like, Purchase, Rating

from .utils import make_book, make_user


class ReconcileCountersTestCase(TestCase):
    """Recomputing denormalized counters from source rows"""

    def setUp(self):
        self.author = make_user('author')
        self.reader = make_user('reader')
        self.book = make_book(self.author, price=Decimal('3.00'))
        Like.objects.create(user=self.reader, book=self.book)
        Comment.objects.create(user=self.reader, book=self.book, content='Hi')
        Rating.objects.create(user=self.reader, book=self.book, score=4)
        Purchase.objects.create(user=self.reader, book=self.book, amount=Decimal('3.00'), payment_intent_id='pi_1')

    def test_detects_and_fixes_drift(self):
        drift = services.reconcile_counters()

        fields = {(model, field) for model, _, field, _, _ in drift}
        self.assertEqual(fields, {
            ('book', 'like_count'),
            ('book', 'comment_count'),
            ('book', 'rating'),
            ('book', 'rating_count'),
            ('user', 'total_earnings'),
        })
        self.book.refresh_from_db()
        self.assertEqual(self.book.like_count, 1)
        self.assertEqual(self.book.comment_count, 1)
        self.assertEqual(self.book.rating, Decimal('4.00'))
        self.assertEqual(self.book.rating_count, 1)
        self.author.refresh_from_db()
        self.assertEqual(self.author.total_earnings, Decimal('3.00'))

        self.assertEqual(services.reconcile_counters(), [])

    def test_dry_run_writes_nothing(self):
        drift = services.reconcile_counters(dry_run=True)

        self.assertTrue(drift)
        self.book.refresh_from_db()
        self.assertEqual(self.book.like_count, 0)

    def test_toggles_leave_nothing_to_fix(self):
        other = make_book(self.author, 'Other')
        services.toggle_like(self.reader, other.id)
        services.create_comment(self.reader, other.id, {'content': 'Nice'})

        drift = services.reconcile_counters()

        self.assertFalse([row for row in drift if row[:2] == ('book', other.id)])

    def test_command_output(self):
        out = StringIO()
        call_command('reconcile_counters', '--dry-run', stdout=out)

        output = out.getvalue()
        self.assertIn('DRY RUN', output)
        self.assertIn(f'book {self.book.id}: like_count 0 -> 1', output)
        self.assertEqual(Book.objects.get(id=self.book.id).like_count, 0)

        out = StringIO()
        call_command('reconcile_counters', stdout=out)
        self.assertIn('Fixed 5 counters', out.getvalue())
