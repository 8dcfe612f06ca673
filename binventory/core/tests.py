"""
Test suite for the core module
Tests: registration, login sessions, two-factor, password recovery and audit logs
"""
from datetime import timedelta

import pyotp
from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status

from binventory.core import accounts, audit, recovery, sessions, two_factor
from binventory.core.audit import AuditAction
from binventory.core.errors import AppError
from binventory.core.models import AuditLog, UserSession, TwoFactorAuth
from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from binventory.core.utils import create_audit_log, parse_int

STRONG_PASSWORD = 'Sturdy-Bins-2024'


class AccountServiceTests(TestCase):
    """Test account service functions"""

    def test_register_normalizes_email(self):
        """Test registration lower-cases the email"""
        user = accounts.register('Alice', 'Alice@Example.COM', STRONG_PASSWORD)
        self.assertEqual(user.email, 'alice@example.com')
        self.assertTrue(user.check_password(STRONG_PASSWORD))
        self.assertTrue(AuditLog.objects.filter(user=user, action=AuditAction.REGISTER).exists())

    def test_register_duplicate_email(self):
        """Test registering an existing email is a conflict"""
        accounts.register('Alice', 'alice@example.com', STRONG_PASSWORD)
        with self.assertRaises(AppError) as ctx:
            accounts.register('Other', 'ALICE@example.com', STRONG_PASSWORD)
        self.assertEqual(ctx.exception.code, 'EMAIL_ALREADY_EXISTS')
        self.assertEqual(ctx.exception.status_code, 409)

    def test_verify_credentials_ignores_email_case(self):
        """Test credentials match the stored email in any case"""
        user = accounts.register('Jane', 'Jane.Doe@Example.com', STRONG_PASSWORD)
        self.assertEqual(accounts.verify_credentials('Jane.Doe@Example.com', STRONG_PASSWORD), user)
        self.assertEqual(accounts.verify_credentials('jane.doe@example.com', STRONG_PASSWORD), user)
        self.assertIsNone(accounts.verify_credentials('jane.doe@example.com', 'wrong-password'))

    def test_verify_credentials_inactive_user(self):
        """Test deactivated users cannot authenticate"""
        user = TestDataFactory.create_user(email='gone@test.com', password=STRONG_PASSWORD)
        user.is_active = False
        user.save()
        self.assertIsNone(accounts.verify_credentials('gone@test.com', STRONG_PASSWORD))

    def test_change_password_wrong_current(self):
        """Test changing password requires the current password"""
        user = TestDataFactory.create_user()
        with self.assertRaises(AppError) as ctx:
            accounts.change_password(user, 'not-it', STRONG_PASSWORD)
        self.assertEqual(ctx.exception.code, 'INVALID_PASSWORD')

    def test_update_profile_records_changes(self):
        """Test profile update stores changed fields in the audit log"""
        user = TestDataFactory.create_user(name='Old')
        accounts.update_profile(user, name='New')
        log = AuditLog.objects.get(user=user, action=AuditAction.PROFILE_UPDATE)
        self.assertEqual(log.metadata['changes']['name'], {'from': 'Old', 'to': 'New'})

    def test_has_permission_role_order(self):
        """Test role hierarchy checks"""
        user = TestDataFactory.create_user()
        admin = TestDataFactory.create_admin()
        self.assertTrue(accounts.has_permission(user, 'USER'))
        self.assertFalse(accounts.has_permission(user, 'ADMIN'))
        self.assertTrue(accounts.has_permission(admin, 'ADMIN'))


class SessionServiceTests(TestCase):
    """Test login session bookkeeping"""

    def setUp(self):
        self.user = TestDataFactory.create_user()

    def test_open_session_binds_token(self):
        """Test the refresh token carries the session id"""
        refresh, session = sessions.open_session(self.user)
        self.assertEqual(refresh[sessions.SESSION_CLAIM], str(session.id))
        self.assertEqual(session.token, refresh['jti'])
        self.assertEqual(refresh.access_token[sessions.SESSION_CLAIM], str(session.id))

    def test_revoke_all_other_sessions(self):
        """Test all sessions but the current one are removed"""
        _, current = sessions.open_session(self.user)
        sessions.open_session(self.user)
        sessions.open_session(self.user)
        count = sessions.revoke_all_other_sessions(self.user, current.id)
        self.assertEqual(count, 2)
        self.assertEqual(list(UserSession.objects.filter(user=self.user)), [current])

    def test_revoke_foreign_session(self):
        """Test a user cannot revoke another user's session"""
        other = TestDataFactory.create_user()
        _, session = sessions.open_session(other)
        with self.assertRaises(AppError) as ctx:
            sessions.revoke_session(self.user, session.id)
        self.assertEqual(ctx.exception.code, 'SESSION_NOT_FOUND')

    def test_cleanup_expired_sessions(self):
        """Test expired sessions are deleted and audited per user"""
        _, session = sessions.open_session(self.user)
        UserSession.objects.filter(pk=session.pk).update(expires=timezone.now() - timedelta(minutes=1))
        self.assertEqual(sessions.cleanup_expired_sessions(), 1)
        self.assertTrue(AuditLog.objects.filter(user=self.user, action=AuditAction.SESSION_EXPIRE).exists())

    def test_extend_session(self):
        """Test extending pushes the expiry forward"""
        _, session = sessions.open_session(self.user)
        extended = sessions.extend_session(self.user, session.id, hours=48)
        self.assertGreater(extended.expires, timezone.now() + timedelta(hours=47))

    def test_new_device_within_lookback(self):
        """Test a new device is flagged while a recent session from another device exists"""
        _, old = sessions.open_session(self.user)
        UserSession.objects.filter(pk=old.pk).update(
            user_agent='Old laptop', expires=timezone.now() - timedelta(days=10)
        )
        _, current = sessions.open_session(self.user)
        UserSession.objects.filter(pk=current.pk).update(user_agent='New phone')
        current.refresh_from_db()

        result = sessions.track_suspicious_activity(self.user, current)
        self.assertTrue(result['isSuspicious'])
        self.assertIn(sessions.NEW_DEVICE_REASON, result['reasons'])

        UserSession.objects.filter(pk=old.pk).update(expires=timezone.now() - timedelta(days=40))
        self.assertFalse(sessions.track_suspicious_activity(self.user, current)['isSuspicious'])

    def test_detect_device_type(self):
        """Test user agent classification"""
        self.assertEqual(sessions.detect_device_type('Mozilla/5.0 (iPhone; CPU iPhone OS)'), 'mobile')
        self.assertEqual(sessions.detect_device_type('Mozilla/5.0 (iPad; CPU OS)'), 'tablet')
        self.assertEqual(sessions.detect_device_type('Mozilla/5.0 (X11; Linux x86_64)'), 'desktop')
        self.assertEqual(sessions.detect_device_type(''), 'unknown')


class TwoFactorTests(TestCase):
    """Test TOTP setup, verification and recovery codes"""

    def setUp(self):
        self.user = TestDataFactory.create_user()

    def _enable(self):
        setup = two_factor.generate_secret(self.user)
        self.assertTrue(two_factor.verify_totp(self.user, pyotp.TOTP(setup['secret']).now()))
        return setup

    def test_first_verification_enables(self):
        """Test the first valid code marks the setup verified"""
        self._enable()
        self.assertTrue(two_factor.is_enabled(self.user))

    def test_malformed_token(self):
        """Test non 6-digit tokens are rejected"""
        two_factor.generate_secret(self.user)
        with self.assertRaises(AppError) as ctx:
            two_factor.verify_totp(self.user, '12ab')
        self.assertEqual(ctx.exception.code, 'INVALID_TOKEN_FORMAT')

    def test_recovery_code_is_single_use(self):
        """Test a recovery code works once"""
        setup = self._enable()
        code = setup['recoveryCodes'][0]
        self.assertTrue(two_factor.verify_recovery_code(self.user, code))
        self.assertFalse(two_factor.verify_recovery_code(self.user, code))
        self.assertEqual(two_factor.get_status(self.user)['recoveryCodesRemaining'], 9)

    def test_setup_again_when_verified(self):
        """Test a verified user must disable before a new setup"""
        self._enable()
        with self.assertRaises(AppError) as ctx:
            two_factor.generate_secret(self.user)
        self.assertEqual(ctx.exception.code, 'TWO_FACTOR_ALREADY_ENABLED')

    def test_disable(self):
        """Test disabling removes the setup"""
        setup = self._enable()
        two_factor.disable(self.user, pyotp.TOTP(setup['secret']).now())
        self.assertFalse(TwoFactorAuth.objects.filter(user=self.user).exists())


class PasswordRecoveryTests(TestCase):
    """Test password reset tokens"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(email='reset@test.com')

    def test_unknown_email(self):
        """Test unknown emails send nothing"""
        self.assertIsNone(recovery.request_password_reset('nobody@test.com'))
        self.assertEqual(len(mail.outbox), 0)

    def test_reset_flow_revokes_sessions(self):
        """Test a completed reset changes the password and ends sessions"""
        sessions.open_session(self.user)
        uid, token = recovery.request_password_reset('reset@test.com')
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(token, mail.outbox[0].body)

        recovery.reset_password(uid, token, STRONG_PASSWORD)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password(STRONG_PASSWORD))
        self.assertFalse(UserSession.objects.filter(user=self.user).exists())

        # Token is bound to the old password hash
        with self.assertRaises(AppError):
            recovery.validate_reset_token(uid, token)

    def test_rate_limited(self):
        """Test at most three requests per hour"""
        for _ in range(recovery.MAX_RESET_REQUESTS_PER_HOUR):
            recovery.request_password_reset('reset@test.com')
        with self.assertRaises(AppError) as ctx:
            recovery.request_password_reset('reset@test.com')
        self.assertEqual(ctx.exception.status_code, 429)

    def test_unknown_email_rate_limited_alike(self):
        """Test unknown addresses hit the same limit as registered ones"""
        for _ in range(recovery.MAX_RESET_REQUESTS_PER_HOUR):
            self.assertIsNone(recovery.request_password_reset('nobody@test.com'))
        with self.assertRaises(AppError) as ctx:
            recovery.request_password_reset('Nobody@Test.com')
        self.assertEqual(ctx.exception.status_code, 429)


class UtilsTests(TestCase):
    """Test helper functions"""

    def test_parse_int(self):
        """Test query integers are clamped"""
        self.assertEqual(parse_int('5', 1), 5)
        self.assertEqual(parse_int('abc', 1), 1)
        self.assertEqual(parse_int('0', 1), 1)
        self.assertEqual(parse_int('500', 20, maximum=100), 100)

    def test_audit_log_without_action(self):
        """Test audit logging without an action is skipped"""
        self.assertIsNone(create_audit_log(action=None))
        self.assertEqual(AuditLog.objects.count(), 0)


class AuthAPITests(TestCase):
    """Test authentication API endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register(self):
        """Test registration returns a user and tokens"""
        response = self.client.post('/api/v1/auth/register/', {
            'name': 'Bob',
            'email': 'bob@test.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertIn('access', response.data['data'])
        self.assertEqual(response.data['data']['user']['email'], 'bob@test.com')

    def test_register_invalid(self):
        """Test registration validation errors use the error envelope"""
        response = self.client.post('/api/v1/auth/register/', {'email': 'bad'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')

    def test_login_and_me(self):
        """Test logging in opens a session usable for requests"""
        TestDataFactory.create_user(email='carol@test.com', password=STRONG_PASSWORD)
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'carol@test.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('session_id', response.data)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['email'], 'carol@test.com')
        self.assertFalse(response.data['data']['two_factor']['enabled'])

    def test_login_wrong_password_is_audited(self):
        """Test failed logins are rejected and logged"""
        TestDataFactory.create_user(email='dave@test.com', password=STRONG_PASSWORD)
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'dave@test.com',
            'password': 'wrong-password',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.LOGIN_FAILURE).exists())

    def test_login_requires_second_factor(self):
        """Test users with two-factor need a code to log in"""
        user = TestDataFactory.create_user(email='erin@test.com', password=STRONG_PASSWORD)
        setup = two_factor.generate_secret(user)
        two_factor.verify_totp(user, pyotp.TOTP(setup['secret']).now())

        response = self.client.post('/api/v1/auth/login/', {
            'email': 'erin@test.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'TWO_FACTOR_REQUIRED')

        response = self.client.post('/api/v1/auth/login/', {
            'email': 'erin@test.com',
            'password': STRONG_PASSWORD,
            'recovery_code': setup['recoveryCodes'][0],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_login_with_registered_email_case(self):
        """Test logging in with the mixed-case address used at registration"""
        self.client.post('/api/v1/auth/register/', {
            'name': 'Jane',
            'email': 'Jane.Doe@Example.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'Jane.Doe@Example.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['email'], 'jane.doe@example.com')

    def test_login_malformed_second_factor(self):
        """Test a code that is not 6 digits is an invalid second factor"""
        user = TestDataFactory.create_user(email='frank@test.com', password=STRONG_PASSWORD)
        setup = two_factor.generate_secret(user)
        two_factor.verify_totp(user, pyotp.TOTP(setup['secret']).now())

        response = self.client.post('/api/v1/auth/login/', {
            'email': 'frank@test.com',
            'password': STRONG_PASSWORD,
            'otp': '12345',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'INVALID_TWO_FACTOR_CODE')

    def test_logout_revokes_token(self):
        """Test the access token stops working after logout"""
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        response = self.client.post('/api/v1/auth/logout/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'UNAUTHORIZED')

    def test_unauthenticated(self):
        """Test protected endpoints need a token"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class SessionAPITests(TestCase):
    """Test session management endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_list_marks_current(self):
        """Test the current session is flagged"""
        sessions.open_session(self.user)
        response = self.client.get('/api/v1/auth/sessions/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 2)
        current = [s for s in response.data['data'] if s['is_current']]
        self.assertEqual(len(current), 1)
        self.assertEqual(current[0]['id'], str(self.client.session_id))

    def test_revoke_others(self):
        """Test revoking every other session keeps the current one"""
        sessions.open_session(self.user)
        response = self.client.post('/api/v1/auth/sessions/revoke-others/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['revokedCount'], 1)
        self.assertTrue(UserSession.objects.filter(pk=self.client.session_id).exists())

    def test_change_password_revokes_other_sessions(self):
        """Test changing password ends the other sessions"""
        self.user.set_password('testpass123')
        self.user.save()
        sessions.open_session(self.user)
        response = self.client.post('/api/v1/auth/change-password/', {
            'current_password': 'testpass123',
            'new_password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['revokedSessions'], 1)


class AuditLogAPITests(TestCase):
    """Test audit log endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()

    def test_list_requires_admin(self):
        """Test regular users cannot list audit logs"""
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filters_by_action(self):
        """Test filtering audit logs by action"""
        create_audit_log(user=self.user, action='bin.create', entity='bin', entity_id='b1')
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/', {'action': 'bin.create'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 1)
        self.assertEqual(response.data['meta']['pagination']['total'], 1)

    def test_export(self):
        """Test exporting returns a JSON attachment"""
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('attachment', response['Content-Disposition'])

    def test_list_rejects_invalid_filters(self):
        """Test malformed filters are a validation error"""
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/', {'user_id': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')
        self.assertIn('user_id', response.data['error']['details'])

        response = self.client.get('/api/v1/audit-logs/export/', {'start_date': '2024-13-01T00:00'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_filters_by_user(self):
        """Test filtering audit logs by user id"""
        create_audit_log(user=self.user, action='bin.create', entity='bin', entity_id='b1')
        create_audit_log(user=self.admin, action='bin.create', entity='bin', entity_id='b2')
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/', {'user_id': self.user.pk, 'action': 'bin.create'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([log['entity_id'] for log in response.data['data']], ['b1'])


class AuditServiceTests(TestCase):
    """Test audit log queries"""

    def test_user_activity_logs(self):
        """Test activity logs only contain the user's own entries, newest first"""
        user = TestDataFactory.create_user()
        create_audit_log(user=user, action='bin.create', entity='bin', entity_id='b1')
        create_audit_log(user=user, action='bin.update', entity='bin', entity_id='b1')
        create_audit_log(user=TestDataFactory.create_user(), action='bin.create', entity='bin', entity_id='b2')

        logs, pagination = audit.get_user_activity_logs(user, page=1, limit=1)
        self.assertEqual(pagination['total'], 2)
        self.assertEqual(pagination['limit'], 1)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].user, user)


class SystemCheckTests(SimpleTestCase):
    """Test the project configuration loads"""

    def test_system_check(self):
        """Test Django's system checks pass with the configured authentication and handlers"""
        call_command('check')
