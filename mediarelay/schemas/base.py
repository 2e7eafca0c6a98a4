"""Base Marshmallow schema for MediaRelay request bodies."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Mapping

from marshmallow import EXCLUDE, Schema, pre_load  # type: ignore[import-not-found]


def _camel_case(name: str) -> str:
    parts = name.split("_")
    return (
        parts[0] + "".join(part.capitalize() for part in parts[1:]) if parts else name
    )


class MediaRelaySchema(Schema):
    """Request schema reading camelCase keys.

    Snake-case spellings of each field (``sub_lang`` for ``subLang``) and the
    extra names in ``key_aliases`` are accepted as well. The canonical key
    wins when a body carries both.
    """

    key_aliases: ClassVar[Dict[str, str]] = {}

    class Meta:
        ordered = True
        unknown = EXCLUDE

    def on_bind_field(self, field_name: str, field_obj: Any) -> None:  # type: ignore[override]
        super().on_bind_field(field_name, field_obj)
        if not getattr(field_obj, "data_key", None):
            field_obj.data_key = _camel_case(field_name)

    def _alias_map(self) -> Dict[str, str]:
        aliases: Dict[str, str] = {}
        for name, field_obj in self.load_fields.items():
            data_key = field_obj.data_key or name
            if data_key != name:
                aliases[name] = data_key
        aliases.update(self.key_aliases)
        return aliases

    @pre_load
    def _accept_aliases(self, data: Any, **_: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        cloned = dict(data)
        for alias, data_key in self._alias_map().items():
            if alias in cloned and data_key not in cloned:
                cloned[data_key] = cloned.pop(alias)
        return cloned


__all__ = ["MediaRelaySchema"]
