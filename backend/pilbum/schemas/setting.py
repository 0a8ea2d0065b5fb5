"""
Pilbum Backend — Settings Schemas
===================================
"""

from typing import Any, Dict

from pydantic import field_validator, model_validator

from pilbum.schemas.common import CamelModel, invalid


class SettingsResponse(CamelModel):
    settings: Dict[str, str]


class SettingUpdate(CamelModel):
    """
    PUT /api/admin/settings body. Any JSON scalar is accepted and stored as a
    string; booleans become "true"/"false".
    """

    key: str = ""
    value: Any = None

    model_config = {"validate_default": True}

    @field_validator("key")
    @classmethod
    def key_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise invalid("缺少 key 或 value")
        if len(v) > 100:
            raise invalid("设置项名称不能超过 100 个字符")
        return v

    @model_validator(mode="after")
    def value_required(self) -> "SettingUpdate":
        if self.value is None:
            raise invalid("缺少 key 或 value")
        return self

    def stored_value(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return str(self.value)
