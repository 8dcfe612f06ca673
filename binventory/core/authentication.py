"""JWT authentication bound to server-side login sessions"""
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed

from .sessions import get_session_for_token, touch_session


class SessionJWTAuthentication(JWTAuthentication):
    """
    Accepts a bearer access token only while the session named by its `sid`
    claim exists and has not expired. The session is exposed as
    `request.user.current_session`.
    """

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        session = get_session_for_token(validated_token)
        if session is None or session.user_id != user.pk:
            raise AuthenticationFailed('Session has expired or was revoked.', code='session_revoked')
        touch_session(session)
        user.current_session = session
        return user
