"""Request-scoped dependencies shared by the API routers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request

from alias_router.services import Services


@dataclass(frozen=True)
class Caller:
    user_id: int
    workspace_id: int


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_caller(
    user_id: Annotated[int, Header(alias="x-user-id")],
    workspace_id: Annotated[int, Header(alias="x-workspace-id")],
) -> Caller:
    """Identity is established upstream; the headers carry its result."""
    return Caller(user_id=user_id, workspace_id=workspace_id)


ServicesDep = Annotated[Services, Depends(get_services)]
CallerDep = Annotated[Caller, Depends(get_caller)]
