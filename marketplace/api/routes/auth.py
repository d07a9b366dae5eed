from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from marketplace.api.models import MeResponse, MessageResponse, SetRoleRequest
from marketplace.core.firebase import set_user_role
from marketplace.core.security import get_current_caller
from marketplace.policy.access import Caller, Role

router = APIRouter()
logger = logging.getLogger(__name__)

# Administrators are provisioned out of band, never self-assigned.
_SELF_ASSIGNABLE_ROLES = frozenset({Role.STUDENT, Role.INSTRUCTOR})


@router.get("/me", response_model=MeResponse)
async def read_me(caller: Annotated[Caller, Depends(get_current_caller)]) -> MeResponse:
  """Return the identity resolved from the bearer token."""
  return MeResponse(uid=caller.id, email=caller.email, role=caller.role.value)


@router.post("/set-role", response_model=MessageResponse)
async def set_role(payload: SetRoleRequest, caller: Annotated[Caller, Depends(get_current_caller)]) -> MessageResponse:
  """Let a signed-in user switch between the student and instructor roles."""
  requested = payload.role.strip().upper()
  if requested not in {role.value for role in _SELF_ASSIGNABLE_ROLES}:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "INVALID_ROLE", "message": "Invalid role"})

  role = Role(requested)
  await run_in_threadpool(set_user_role, caller.id, role.value.lower())
  logger.info("auth.set_role user_id=%s role=%s", caller.id, role.value)
  return MessageResponse(message="Role updated successfully")
