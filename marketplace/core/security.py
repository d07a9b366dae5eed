from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from marketplace.core.firebase import verify_id_token
from marketplace.policy.access import Caller, Role

# auto_error is off so public routes can serve anonymous callers.
security_scheme = HTTPBearer(auto_error=False)

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}


def caller_from_claims(decoded_claims: dict[str, Any]) -> Caller | None:
  """Map verified token claims onto a caller; None when the uid is missing."""
  firebase_uid = decoded_claims.get("uid") or decoded_claims.get("user_id")
  if not firebase_uid:
    return None
  email = decoded_claims.get("email")
  return Caller(id=str(firebase_uid), role=Role.from_claim(decoded_claims.get("role")), email=str(email) if email else None)


async def get_optional_caller(token: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)]) -> Caller | None:
  """Resolve the caller when a bearer token is sent; anonymous otherwise.

  A token that is present but fails verification is rejected rather than downgraded to anonymous.
  """
  if token is None:
    return None

  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)
  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "INVALID_TOKEN", "message": "Invalid authentication credentials"}, headers=_UNAUTHORIZED_HEADERS)

  caller = caller_from_claims(decoded_claims)
  if caller is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "INVALID_TOKEN", "message": "Invalid token claims"}, headers=_UNAUTHORIZED_HEADERS)
  return caller


async def get_current_caller(caller: Annotated[Caller | None, Depends(get_optional_caller)]) -> Caller:
  """Require an authenticated caller."""
  if caller is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "UNAUTHORIZED", "message": "Authentication required"}, headers=_UNAUTHORIZED_HEADERS)
  return caller


def require_role(*roles: Role) -> Callable[[Caller], Awaitable[Caller]]:
  """Build a dependency that admits only callers holding one of the given roles."""
  allowed = frozenset(roles)

  async def _require_role(caller: Annotated[Caller, Depends(get_current_caller)]) -> Caller:
    if caller.role not in allowed:
      raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "FORBIDDEN", "message": "Insufficient role for this operation"})
    return caller

  return _require_role
