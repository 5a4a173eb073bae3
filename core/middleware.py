"""
DysaEats WebSocket Authentication
=================================

Browsers reuse the Django session; mobile and SPA clients pass their JWT
access token as `?token=<access>` in the WebSocket URL.
"""

import logging
from urllib.parse import parse_qs

from channels.auth import AuthMiddlewareStack
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@database_sync_to_async
def get_user_from_token(raw_token: str):
    """Resolve a JWT access token to an active user, or AnonymousUser."""
    User = get_user_model()
    try:
        token = AccessToken(raw_token)
        user_id = token[api_settings.USER_ID_CLAIM]
        return User.objects.get(pk=user_id, is_active=True)
    except (TokenError, KeyError, User.DoesNotExist) as e:
        logger.warning(f"[WS-AUTH] Token rejected: {e}")
        return AnonymousUser()


class JwtAuthMiddleware(BaseMiddleware):
    """Populate scope['user'] from a `token` query parameter."""

    async def __call__(self, scope, receive, send):
        user = scope.get('user')
        if user is None or not user.is_authenticated:
            query = parse_qs(scope.get('query_string', b'').decode())
            tokens = query.get('token')
            if tokens:
                scope = dict(scope, user=await get_user_from_token(tokens[0]))
        return await super().__call__(scope, receive, send)


def JwtAuthMiddlewareStack(inner):
    """Session auth first, then JWT from the query string."""
    return AuthMiddlewareStack(JwtAuthMiddleware(inner))
