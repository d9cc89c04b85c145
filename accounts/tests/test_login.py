"""
Tests for identity assertions, user upsert and token sessions.
"""

import json
from datetime import timedelta

from django.core import signing
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from accounts.identity import make_identity_assertion, read_identity_assertion
from accounts.models import User, UserSession
from accounts.services import update_profile, upsert_user
from accounts.utils import clear_login_failures, is_login_rate_limited, register_login_failure
from catalog.exceptions import UnauthenticatedError, ValidationError


class IdentityAssertionTestCase(TestCase):
    def test_roundtrip(self):
        token = make_identity_assertion({'sub': 'idp|42', 'email': 'ada@example.com'})

        self.assertEqual(read_identity_assertion(token)['sub'], 'idp|42')

    def test_tampered_assertion(self):
        token = make_identity_assertion({'sub': 'idp|42'})

        with self.assertRaises(UnauthenticatedError):
            read_identity_assertion(token[:-2] + 'xx')

    def test_assertion_without_subject(self):
        with self.assertRaises(UnauthenticatedError):
            read_identity_assertion(make_identity_assertion({'email': 'ada@example.com'}))

    def test_expired_assertion(self):
        token = make_identity_assertion({'sub': 'idp|42'})

        with self.assertRaises(UnauthenticatedError):
            read_identity_assertion(token, max_age_seconds=-1)

    def test_assertion_from_other_salt(self):
        token = signing.TimestampSigner(salt='other').sign_object({'sub': 'idp|42'})

        with self.assertRaises(UnauthenticatedError):
            read_identity_assertion(token)


class UpsertUserTestCase(TestCase):
    def test_first_sight_creates_user(self):
        user, created = upsert_user({'sub': 'idp|1', 'email': 'Ada@Example.com', 'first_name': 'Ada'})

        self.assertTrue(created)
        self.assertEqual(user.external_id, 'idp|1')
        self.assertEqual(user.email, 'Ada@example.com')
        self.assertFalse(user.has_usable_password())

    def test_replay_is_idempotent(self):
        claims = {'sub': 'idp|1', 'email': 'ada@example.com', 'first_name': 'Ada', 'last_name': 'Lovelace'}
        first, _ = upsert_user(claims)
        second, created = upsert_user(claims)

        self.assertFalse(created)
        self.assertEqual(first.id, second.id)
        self.assertEqual(User.objects.count(), 1)

    def test_missing_claims_keep_stored_values(self):
        upsert_user({'sub': 'idp|1', 'email': 'ada@example.com', 'first_name': 'Ada'})
        user, _ = upsert_user({'sub': 'idp|1'})

        self.assertEqual(user.email, 'ada@example.com')
        self.assertEqual(user.first_name, 'Ada')

    def test_claims_refresh_profile(self):
        upsert_user({'sub': 'idp|1', 'first_name': 'Ada'})
        user, _ = upsert_user({'sub': 'idp|1', 'first_name': 'Augusta'})

        self.assertEqual(user.first_name, 'Augusta')

    def test_email_taken_by_other_account(self):
        upsert_user({'sub': 'idp|1', 'email': 'ada@example.com'})

        with self.assertRaises(ValidationError) as cm:
            upsert_user({'sub': 'idp|2', 'email': 'ada@example.com'})
        self.assertIn('email', cm.exception.errors)

    def test_profile_update_is_partial(self):
        user, _ = upsert_user({'sub': 'idp|1', 'first_name': 'Ada', 'last_name': 'Lovelace'})

        update_profile(user, {'bio': 'Writes about engines'})

        user.refresh_from_db()
        self.assertEqual(user.bio, 'Writes about engines')
        self.assertEqual(user.first_name, 'Ada')


class LoginViewTestCase(TestCase):
    def setUp(self):
        cache.clear()

    def login(self, assertion):
        return self.client.post(
            reverse('accounts:login'),
            data=json.dumps({'assertion': assertion}),
            content_type='application/json',
        )

    def test_login_issues_session(self):
        response = self.login(make_identity_assertion({'sub': 'idp|1', 'email': 'ada@example.com'}))

        self.assertEqual(response.status_code, 201)
        token = response.json()['token']
        self.assertIn('session_token', response.cookies)

        me = self.client.get(reverse('accounts:current_user'), HTTP_AUTHORIZATION=f'Bearer {token}')
        self.assertEqual(me.json()['external_id'], 'idp|1')

        again = self.login(make_identity_assertion({'sub': 'idp|1'}))
        self.assertEqual(again.status_code, 200)
        self.assertFalse(again.json()['created'])

    def test_bad_assertion_is_401(self):
        self.assertEqual(self.login('garbage').status_code, 401)
        self.assertEqual(self.login('').status_code, 400)

    @override_settings(LOGIN_RATE_LIMIT_ATTEMPTS=2)
    def test_repeated_failures_lock_out(self):
        self.login('garbage')
        self.login('garbage')

        response = self.login(make_identity_assertion({'sub': 'idp|1'}))

        self.assertEqual(response.status_code, 429)
        self.assertFalse(User.objects.exists())

    def test_anonymous_user_endpoint(self):
        self.assertEqual(self.client.get(reverse('accounts:current_user')).status_code, 401)

    def test_expired_session_rejected(self):
        user = User.objects.create_user('idp|1')
        raw_token, session = UserSession.create_session(user)
        session.expires_at = timezone.now() - timedelta(seconds=1)
        session.save()

        response = self.client.get(reverse('accounts:current_user'), HTTP_AUTHORIZATION=f'Bearer {raw_token}')

        self.assertEqual(response.status_code, 401)

    def test_logout_ends_session(self):
        user = User.objects.create_user('idp|1')
        raw_token, _ = UserSession.create_session(user)
        headers = {'HTTP_AUTHORIZATION': f'Bearer {raw_token}'}

        self.client.post(reverse('accounts:logout'), **headers)

        self.assertFalse(UserSession.objects.exists())
        self.assertEqual(self.client.get(reverse('accounts:current_user'), **headers).status_code, 401)

    def test_profile_update(self):
        user = User.objects.create_user('idp|1')
        raw_token, _ = UserSession.create_session(user)

        response = self.client.post(
            reverse('accounts:profile'),
            data=json.dumps({'bio': 'Hello', 'profile_image_url': 'not a url'}),
            content_type='application/json',
            HTTP_AUTHORIZATION=f'Bearer {raw_token}',
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('profile_image_url', response.json()['errors'])


class LoginFailureCounterTestCase(TestCase):
    def setUp(self):
        cache.clear()

    @override_settings(LOGIN_RATE_LIMIT_ATTEMPTS=3)
    def test_counts_until_lock(self):
        self.assertEqual(register_login_failure('10.0.0.9'), 1)
        self.assertEqual(register_login_failure('10.0.0.9'), 2)
        self.assertFalse(is_login_rate_limited('10.0.0.9'))

        self.assertEqual(register_login_failure('10.0.0.9'), 3)
        self.assertTrue(is_login_rate_limited('10.0.0.9'))

        clear_login_failures('10.0.0.9')
        self.assertFalse(is_login_rate_limited('10.0.0.9'))
        self.assertEqual(register_login_failure('10.0.0.9'), 1)
