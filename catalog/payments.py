"""
Payment processor gateway.

The storefront talks to Stripe in exactly two places: creating a payment
intent for checkout, and retrieving one to confirm it succeeded before a
purchase is recorded. Processor failures surface as PaymentProcessorError
and are persisted to SystemErrorLog.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

import stripe
from django.conf import settings

from .exceptions import PaymentProcessorError, ValidationError
from .models import SystemErrorLog

logger = logging.getLogger(__name__)


def to_minor_units(amount):
    return int((Decimal(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def from_minor_units(amount):
    return (Decimal(int(amount)) / 100).quantize(Decimal('0.01'))


def _client():
    if not settings.STRIPE_SECRET_KEY:
        raise PaymentProcessorError('Payment processor is not configured.')
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def _record_failure(action, exc, metadata):
    logger.error('Payment processor %s failed: %s', action, exc)
    SystemErrorLog.objects.create(source='payments', message=str(exc), metadata={'action': action, **metadata})


def _metadata_value(intent, key):
    try:
        return str(intent.metadata[key])
    except (KeyError, TypeError):
        return None


def create_payment_intent(book, user):
    if book.is_free:
        raise ValidationError('Free books do not need a payment.', errors={'book_id': ['Book is free.']})
    amount = to_minor_units(book.price)
    # Verification checks the paid amount against this quote, not the live price.
    metadata = {'book_id': str(book.id), 'user_id': str(user.id), 'amount': str(amount)}
    client = _client()
    try:
        intent = client.PaymentIntent.create(
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            payment_method_types=list(settings.PAYMENT_METHOD_TYPES),
            metadata=metadata,
        )
    except stripe.StripeError as exc:
        _record_failure('create_intent', exc, metadata)
        raise PaymentProcessorError(f'Error creating payment intent: {exc.user_message or exc}') from exc
    logger.info('Created payment intent %s for book %s user %s', intent.id, book.id, user.id)
    return {'client_secret': intent.client_secret, 'payment_intent_id': intent.id}


def verify_payment_intent(payment_intent_id, book, user):
    """
    Confirm with the processor that the intent paid for this book.

    Returns the amount actually paid as a Decimal. The amount is checked
    against the quote stored on the intent at checkout, so a price change
    made after payment does not reject it.
    """
    metadata = {'book_id': str(book.id), 'user_id': str(user.id), 'payment_intent_id': payment_intent_id}
    client = _client()
    try:
        intent = client.PaymentIntent.retrieve(payment_intent_id)
    except stripe.InvalidRequestError as exc:
        raise ValidationError('Unknown payment intent.', errors={'payment_intent_id': ['Not found at payment processor.']}) from exc
    except stripe.StripeError as exc:
        _record_failure('retrieve_intent', exc, metadata)
        raise PaymentProcessorError(f'Error verifying payment: {exc.user_message or exc}') from exc

    problems = []
    if intent.status != 'succeeded':
        problems.append(f'Payment status is {intent.status}.')
    quoted = _metadata_value(intent, 'amount')
    if not quoted or not quoted.isdigit() or intent.amount != int(quoted) or intent.amount <= 0:
        problems.append('Payment amount does not match the checkout quote.')
    if str(intent.currency).lower() != settings.PAYMENT_CURRENCY.lower():
        problems.append('Payment currency does not match.')
    if _metadata_value(intent, 'book_id') != str(book.id) or _metadata_value(intent, 'user_id') != str(user.id):
        problems.append('Payment belongs to another checkout.')
    if problems:
        logger.warning('Rejected payment intent %s for book %s user %s: %s', payment_intent_id, book.id, user.id, problems)
        raise ValidationError('Payment could not be confirmed.', errors={'payment_intent_id': problems})
    return from_minor_units(intent.amount)
