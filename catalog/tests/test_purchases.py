"""
Tests for purchases, content access and the payment processor gateway.

Stripe is never reached: PaymentIntent.create and PaymentIntent.retrieve are
patched for every test that gets that far.
"""

from decimal import Decimal
from unittest.mock import patch

import stripe
from django.test import TestCase, override_settings

from catalog import payments, services
from catalog.exceptions import ConflictError, NotFoundError, PaymentProcessorError, ValidationError
from catalog.models import Purchase, SystemErrorLog

from .utils import fake_intent, make_book, make_user

RETRIEVE = 'catalog.payments.stripe.PaymentIntent.retrieve'
CREATE = 'catalog.payments.stripe.PaymentIntent.create'


@override_settings(STRIPE_SECRET_KEY='sk_test_123', PAYMENT_CURRENCY='usd')
class PurchaseTestCase(TestCase):
    """Recording purchases"""

    def setUp(self):
        self.author = make_user('author')
        self.buyer = make_user('buyer')
        self.book = make_book(self.author, 'Priced', price=Decimal('4.99'))

    def test_purchase_grants_access(self):
        self.assertFalse(services.has_purchased(self.buyer, self.book))
        self.assertFalse(services.can_access_full_content(self.buyer, self.book))

        with patch(RETRIEVE, return_value=fake_intent(self.book, self.buyer)) as retrieve:
            purchase = services.create_purchase(self.buyer, self.book.id, 'pi_test_123')

        retrieve.assert_called_once_with('pi_test_123')
        self.assertEqual(purchase.amount, Decimal('4.99'))
        self.assertTrue(services.has_purchased(self.buyer, self.book))
        self.assertTrue(services.can_access_full_content(self.buyer, self.book))

    def test_second_purchase_conflicts(self):
        with patch(RETRIEVE, return_value=fake_intent(self.book, self.buyer)):
            services.create_purchase(self.buyer, self.book.id, 'pi_test_123')
            with self.assertRaises(ConflictError):
                services.create_purchase(self.buyer, self.book.id, 'pi_test_123')

        self.assertEqual(Purchase.objects.filter(user=self.buyer, book=self.book).count(), 1)

    def test_purchase_credits_author(self):
        with patch(RETRIEVE, return_value=fake_intent(self.book, self.buyer)):
            services.create_purchase(self.buyer, self.book.id, 'pi_test_123')

        self.author.refresh_from_db()
        self.assertEqual(self.author.total_earnings, Decimal('4.99'))
        self.assertEqual(services.get_user_stats(self.author.id)['total_earnings'], '4.99')

    def test_price_change_after_payment_records_paid_amount(self):
        intent = fake_intent(self.book, self.buyer)
        services.update_book(self.book.id, self.author, {'price': '9.99'})

        with patch(RETRIEVE, return_value=intent):
            purchase = services.create_purchase(self.buyer, self.book.id, 'pi_test_123')

        self.assertEqual(purchase.amount, Decimal('4.99'))
        self.author.refresh_from_db()
        self.assertEqual(self.author.total_earnings, Decimal('4.99'))

    def test_book_made_free_after_payment_still_records(self):
        intent = fake_intent(self.book, self.buyer)
        services.update_book(self.book.id, self.author, {'price': '0.00'})

        with patch(RETRIEVE, return_value=intent):
            purchase = services.create_purchase(self.buyer, self.book.id, 'pi_test_123')

        self.assertEqual(purchase.amount, Decimal('4.99'))

    def test_amount_must_match_quote(self):
        intent = fake_intent(self.book, self.buyer, amount=100)
        missing_quote = fake_intent(self.book, self.buyer, metadata={'book_id': str(self.book.id), 'user_id': str(self.buyer.id)})

        for candidate in (intent, missing_quote):
            with patch(RETRIEVE, return_value=candidate):
                with self.assertRaises(ValidationError) as cm:
                    services.create_purchase(self.buyer, self.book.id, 'pi_test_123')
            self.assertIn('Payment amount does not match the checkout quote.', cm.exception.errors['payment_intent_id'])
        self.assertFalse(Purchase.objects.exists())

    def test_unsucceeded_intent_rejected(self):
        intent = fake_intent(self.book, self.buyer, status='requires_payment_method')

        with patch(RETRIEVE, return_value=intent):
            with self.assertRaises(ValidationError) as cm:
                services.create_purchase(self.buyer, self.book.id, 'pi_test_123')

        self.assertIn('payment_intent_id', cm.exception.errors)
        self.assertFalse(Purchase.objects.exists())

    def test_intent_for_other_checkout_rejected(self):
        other = make_user('other')
        wrong_user = fake_intent(self.book, other)
        wrong_book = fake_intent(make_book(self.author, 'Other', price=Decimal('4.99')), self.buyer)

        for intent in (wrong_user, wrong_book):
            with patch(RETRIEVE, return_value=intent):
                with self.assertRaises(ValidationError):
                    services.create_purchase(self.buyer, self.book.id, 'pi_test_123')
        self.assertFalse(Purchase.objects.exists())

    def test_unknown_intent_is_validation_error(self):
        error = stripe.InvalidRequestError('No such payment_intent', 'id')

        with patch(RETRIEVE, side_effect=error):
            with self.assertRaises(ValidationError):
                services.create_purchase(self.buyer, self.book.id, 'pi_missing')

    def test_processor_outage_is_distinct(self):
        with patch(RETRIEVE, side_effect=stripe.APIConnectionError('Network down')):
            with self.assertRaises(PaymentProcessorError):
                services.create_purchase(self.buyer, self.book.id, 'pi_test_123')

        log = SystemErrorLog.objects.get()
        self.assertEqual(log.source, 'payments')
        self.assertEqual(log.metadata['action'], 'retrieve_intent')
        self.assertFalse(Purchase.objects.exists())

    def test_author_cannot_buy_own_book(self):
        with self.assertRaises(ValidationError):
            services.create_purchase(self.author, self.book.id, 'pi_test_123')

    def test_free_book_needs_no_checkout(self):
        free = make_book(self.author, 'Free')

        with patch(CREATE) as create:
            with self.assertRaises(ValidationError):
                services.create_payment_intent(self.buyer, free.id)
        create.assert_not_called()
        self.assertTrue(services.can_access_full_content(self.buyer, free))
        self.assertTrue(services.can_access_full_content(None, free))

    def test_unpublished_book_cannot_be_bought(self):
        draft = make_book(self.author, 'Draft', price=Decimal('2.00'), is_published=False)

        with self.assertRaises(NotFoundError):
            services.create_purchase(self.buyer, draft.id, 'pi_test_123')

    def test_author_always_has_access(self):
        self.assertTrue(services.can_access_full_content(self.author, self.book))
        self.assertFalse(services.can_access_full_content(None, self.book))


@override_settings(STRIPE_SECRET_KEY='sk_test_123', PAYMENT_CURRENCY='usd', PAYMENT_METHOD_TYPES=['card', 'cashapp'])
class PaymentIntentTestCase(TestCase):
    """Creating payment intents"""

    def setUp(self):
        self.author = make_user('author')
        self.buyer = make_user('buyer')
        self.book = make_book(self.author, 'Priced', price=Decimal('4.99'))

    def test_amount_in_minor_units(self):
        with patch(CREATE, return_value=fake_intent(self.book, self.buyer)) as create:
            result = services.create_payment_intent(self.buyer, self.book.id)

        create.assert_called_once_with(
            amount=499,
            currency='usd',
            payment_method_types=['card', 'cashapp'],
            metadata={'book_id': str(self.book.id), 'user_id': str(self.buyer.id), 'amount': '499'},
        )
        self.assertEqual(result, {'client_secret': 'pi_test_123_secret_abc', 'payment_intent_id': 'pi_test_123'})

    def test_already_purchased(self):
        Purchase.objects.create(user=self.buyer, book=self.book, amount=self.book.price, payment_intent_id='pi_old')

        with patch(CREATE) as create:
            with self.assertRaises(ConflictError):
                services.create_payment_intent(self.buyer, self.book.id)
        create.assert_not_called()

    def test_processor_failure(self):
        with patch(CREATE, side_effect=stripe.APIConnectionError('Network down')):
            with self.assertRaises(PaymentProcessorError):
                services.create_payment_intent(self.buyer, self.book.id)
        self.assertEqual(SystemErrorLog.objects.get().metadata['action'], 'create_intent')

    @override_settings(STRIPE_SECRET_KEY='')
    def test_unconfigured_processor(self):
        with self.assertRaises(PaymentProcessorError):
            services.create_payment_intent(self.buyer, self.book.id)

    def test_to_minor_units_rounds(self):
        self.assertEqual(payments.to_minor_units(Decimal('4.99')), 499)
        self.assertEqual(payments.to_minor_units('10'), 1000)
        self.assertEqual(payments.to_minor_units(Decimal('0.005')), 1)
        self.assertEqual(payments.from_minor_units(499), Decimal('4.99'))
