"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Identity arrives only as "Authorization: Bearer <token>".

  get_current_account_id() -- decodes the token and returns the account id.
      Stateless: signature + expiry are enough, the store is not consulted.
      This is all the asset routes ever receive.
  get_current_account()    -- additionally loads the Account (for /auth/me).

Failure mapping:
  no / malformed Authorization header -> UnauthorizedError  (401)
  bad signature, garbage, expired     -> InvalidTokenError   (403)

The errors are raised as AuthError subclasses; api/main.py turns them into
the standard error envelope.

Layer rule: no imports from api/ or assets/. This module may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import InvalidTokenError, UnauthorizedError
from auth.models import Account
from auth.tokens import decode_access_token


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError()
    return token.strip()


def get_current_account_id(request: Request) -> int:
    """Require a valid bearer token and return the account id it asserts.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account_id: int = Depends(get_current_account_id)): ...
    """
    claims = decode_access_token(_bearer_token(request))
    return claims["user_id"]


def get_current_account(request: Request) -> Account:
    """Require a valid bearer token for an account that still exists.

    A token for a deleted account (e.g. purged before verification) is
    treated as invalid rather than as "not found".
    """
    account_id = get_current_account_id(request)
    account = request.app.state.account_store.get_by_id(account_id)
    if account is None:
        raise InvalidTokenError()
    return account
