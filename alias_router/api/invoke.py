"""Alias invocation route."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body
from pydantic import BaseModel, Field

from alias_router.router.engine import InvokeOptions, InvokeRequest, InvokeResponse

from .dependencies import CallerDep, ServicesDep

router = APIRouter(prefix="/v1")


class InvokeBody(BaseModel):
    alias_name: str
    capability: str | None = None
    prompt: str | None = None
    input_data: Dict[str, Any] | None = None
    options: InvokeOptions = Field(default_factory=InvokeOptions)


INVOKE_EXAMPLES = {
    "text": {
        "summary": "Text alias",
        "value": {
            "alias_name": "default-writer",
            "prompt": "Write a two sentence product announcement.",
            "options": {"temperature": 0.4, "max_tokens": 200},
        },
    },
    "image": {
        "summary": "Image alias",
        "value": {
            "alias_name": "image-hero",
            "prompt": "A lighthouse at dawn, watercolor",
            "input_data": {"size": "1024x1024"},
        },
    },
}


@router.post("/invoke", response_model=InvokeResponse)
async def invoke_alias(
    services: ServicesDep,
    caller: CallerDep,
    body: InvokeBody = Body(..., openapi_examples=INVOKE_EXAMPLES),
) -> InvokeResponse:
    request = InvokeRequest(
        workspace_id=caller.workspace_id,
        user_id=caller.user_id,
        **body.model_dump(),
    )
    return await services.engine.invoke(request)
