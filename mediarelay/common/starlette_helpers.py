"""Shared Starlette helper utilities used across the MediaRelay backend."""

from __future__ import annotations

import json
from typing import Any, Mapping, TypeAlias

from marshmallow import Schema, ValidationError  # type: ignore[import-not-found]
from starlette.requests import Request

JSONPrimitive = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]


class RequestValidationError(RuntimeError):
    """Raised when an incoming request payload fails validation."""

    def __init__(
        self,
        errors: Mapping[str, Any] | None = None,
        *,
        message: str = "Invalid request payload",
    ) -> None:
        super().__init__(message)
        self.errors: dict[str, Any] = dict(errors or {})


async def read_json_body(request: Request) -> Any:
    """Read and return the request JSON payload, raising a friendly error on failure."""

    body = await request.body()
    if not body.strip():
        raise RequestValidationError({"json": "Request body is empty"})
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RequestValidationError({"json": "Invalid JSON payload"}) from exc


async def read_json_object(request: Request) -> Mapping[str, Any]:
    payload = await read_json_body(request)
    if not isinstance(payload, Mapping):
        raise RequestValidationError({"json": "JSON object required"})
    return payload


def load_with_schema(
    schema: Schema, payload: Any, *, partial: bool | None = None
) -> Any:
    """Validate and deserialize input data with the provided Marshmallow schema."""

    try:
        return schema.load(payload, partial=partial)
    except ValidationError as exc:
        raise RequestValidationError(exc.normalized_messages()) from exc


__all__ = [
    "JSONValue",
    "RequestValidationError",
    "read_json_body",
    "read_json_object",
    "load_with_schema",
]
