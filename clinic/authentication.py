"""
Custom authentication backend for token-based auth.

This module defines a subclass of Django REST framework's
``TokenAuthentication`` that pins the ``keyword`` used in the
``Authorization`` header.  Keeping it out of the view modules avoids
circular imports when REST framework loads authentication classes
during initialisation.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """Token authentication using the ``Token`` keyword.

    SimpleJWT's ``Bearer`` tokens are accepted alongside it, see
    ``REST_FRAMEWORK['DEFAULT_AUTHENTICATION_CLASSES']``.
    """

    keyword = 'Token'
