"""Helper utilities for provider adapters."""

from __future__ import annotations

from typing import Any

import httpx

MAX_ERROR_DETAIL_LENGTH = 300


def extract_error_body(response: httpx.Response) -> Any:
    """Return structured error details if available, else a trimmed text body."""

    try:
        return response.json()
    except ValueError:
        text = getattr(response, "text", None)
        if text:
            stripped = text.strip()
            if stripped:
                return stripped
        return None


def extract_error_detail(response: httpx.Response) -> str | None:
    """Return a trimmed, human readable provider error detail, if available."""

    detail: str | None = None
    data = extract_error_body(response)
    if isinstance(data, dict):
        error_obj = data.get("error")
        if isinstance(error_obj, dict):
            parts = [
                part.strip()
                for part in (error_obj.get("status") or error_obj.get("type"), error_obj.get("message"))
                if isinstance(part, str) and part.strip()
            ]
            if parts:
                detail = " - ".join(parts)
            elif error_obj:
                detail = str(error_obj)
        elif isinstance(error_obj, str):
            detail = error_obj
        elif isinstance(data.get("detail"), str):
            detail = data["detail"]
        elif isinstance(data.get("message"), str):
            detail = data["message"]
        elif data:
            detail = str(data)
    elif data:
        detail = str(data)

    if detail:
        compact = " ".join(detail.split())
        if len(compact) > MAX_ERROR_DETAIL_LENGTH:
            compact = f"{compact[: MAX_ERROR_DETAIL_LENGTH - 3]}..."
        return compact
    return None


__all__ = ["extract_error_body", "extract_error_detail"]
