"""Request payload helpers validated via Marshmallow schemas."""

from __future__ import annotations

import json
from typing import Any

from marshmallow import fields, post_load

from ...schemas.base import MediaRelaySchema
from ...utils import clean_string


def _normalize_cookies(value: Any) -> str | None:
    """Accept a pasted cookie blob as text or an already-decoded JSON array."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return clean_string(value)


class ProbeRequestBody:
    def __init__(self, url: str | None = None, cookies: Any = None) -> None:
        self.url = clean_string(url)
        self.cookies = _normalize_cookies(cookies)


class CreateJobRequestBody:
    def __init__(
        self,
        url: str | None = None,
        type: Any = None,  # noqa: A002 - wire name
        quality: Any = None,
        sub_lang: str | None = None,
        cookies: Any = None,
    ) -> None:
        self.url = clean_string(url)
        self.operation = clean_string(type)
        self.quality = clean_string(quality)
        self.sub_lang = clean_string(sub_lang)
        self.cookies = _normalize_cookies(cookies)


class ProbeRequestSchema(MediaRelaySchema):
    url = fields.String(load_default=None, allow_none=True)
    cookies = fields.Raw(load_default=None, allow_none=True)

    @post_load
    def make(self, data: dict[str, Any], **_: Any) -> ProbeRequestBody:
        return ProbeRequestBody(**data)


class CreateJobRequestSchema(MediaRelaySchema):
    key_aliases = {"operation": "type"}

    url = fields.String(load_default=None, allow_none=True)
    type = fields.Raw(load_default=None, allow_none=True)
    quality = fields.Raw(load_default=None, allow_none=True)
    sub_lang = fields.String(load_default=None, allow_none=True)
    cookies = fields.Raw(load_default=None, allow_none=True)

    @post_load
    def make(self, data: dict[str, Any], **_: Any) -> CreateJobRequestBody:
        return CreateJobRequestBody(**data)


__all__ = [
    "CreateJobRequestBody",
    "CreateJobRequestSchema",
    "ProbeRequestBody",
    "ProbeRequestSchema",
]
