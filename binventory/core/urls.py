from django.urls import path
from .views import (
    LoginView, SessionTokenRefreshView, register, logout, user_me, change_password,
    session_list, session_revoke, session_extend, session_revoke_others,
    two_factor_status, two_factor_setup, two_factor_verify, two_factor_recover,
    two_factor_disable, two_factor_recovery_codes,
    password_reset_request, password_reset_validate, password_reset_confirm,
    security_logs, audit_log_list, audit_log_export,
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', LoginView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', SessionTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/logout/', logout, name='logout'),
    path('auth/me/', user_me, name='user-me'),
    path('auth/change-password/', change_password, name='change-password'),

    # Password recovery
    path('auth/recovery/', password_reset_request, name='password-reset-request'),
    path('auth/recovery/validate/', password_reset_validate, name='password-reset-validate'),
    path('auth/recovery/reset/', password_reset_confirm, name='password-reset-confirm'),

    # Session endpoints
    path('auth/sessions/', session_list, name='session-list'),
    path('auth/sessions/revoke-others/', session_revoke_others, name='session-revoke-others'),
    path('auth/sessions/<uuid:session_id>/', session_revoke, name='session-revoke'),
    path('auth/sessions/<uuid:session_id>/extend/', session_extend, name='session-extend'),

    # Two-factor endpoints
    path('auth/two-factor/', two_factor_status, name='two-factor-status'),
    path('auth/two-factor/setup/', two_factor_setup, name='two-factor-setup'),
    path('auth/two-factor/verify/', two_factor_verify, name='two-factor-verify'),
    path('auth/two-factor/recover/', two_factor_recover, name='two-factor-recover'),
    path('auth/two-factor/disable/', two_factor_disable, name='two-factor-disable'),
    path('auth/two-factor/recovery-codes/', two_factor_recovery_codes, name='two-factor-recovery-codes'),

    # AuditLog endpoints
    path('auth/security/logs/', security_logs, name='security-logs'),
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/export/', audit_log_export, name='audit-log-export'),
]
