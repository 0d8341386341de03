"""
Manifest models for owdev.

Flag values in app manifests are loose (`true`, `'yes'`, `'raw'`, `'no'`...).
They are parsed once here, when the manifest is validated, so the dispatch
code only ever sees `WebExport` and plain booleans.
"""

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WEB_EXPORT_ANNOTATION = "web-export"
REQUIRE_AUTH_ANNOTATION = "require-adobe-auth"

_FALSY_WEB_VALUES = ("false", "no")
_FALSY_AUTH_STRINGS = ("false", "no", "0", "")


class WebExport(str, Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"
    RAW = "raw"


def _web_flag_enabled(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str) and value in _FALSY_WEB_VALUES:
        return False
    return True


def parse_web_export(annotation_value: Any, web_value: Any) -> WebExport:
    """
    Combine the `web-export` annotation and the legacy `web` flag.

    Either one being the string 'raw' makes the item RAW; either one being
    truthy makes it ENABLED. Absent values mean DISABLED.
    """
    if annotation_value == "raw" or web_value == "raw":
        return WebExport.RAW
    if _web_flag_enabled(annotation_value) or _web_flag_enabled(web_value):
        return WebExport.ENABLED
    return WebExport.DISABLED


def parse_require_auth(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_AUTH_STRINGS
    return bool(value)


class ManifestItem(BaseModel):
    """Fields shared by actions and sequences."""

    model_config = ConfigDict(frozen=True, extra="allow")

    annotations: Dict[str, Any] = Field(default_factory=dict)
    web: Any = None

    # derived at validation time
    web_export: WebExport = WebExport.DISABLED
    require_auth: bool = False

    @model_validator(mode="before")
    @classmethod
    def _parse_flags(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        annotations = data.get("annotations") or {}
        data["annotations"] = annotations
        data["web_export"] = parse_web_export(
            annotations.get(WEB_EXPORT_ANNOTATION), data.get("web")
        )
        data["require_auth"] = parse_require_auth(annotations.get(REQUIRE_AUTH_ANNOTATION))
        return data


class Action(ManifestItem):
    function: str
    inputs: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("inputs", mode="before")
    @classmethod
    def _none_inputs(cls, v: Any) -> Any:
        return {} if v is None else v


class Sequence(ManifestItem):
    actions: List[str] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def _split_actions(cls, v: Any) -> Any:
        # "a, b ,c" -> ["a", "b", "c"]; empty elements are kept so that
        # "a,,b" fails as a missing component rather than silently skipping
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            return [name.strip() for name in v.split(",")]
        return [str(name).strip() for name in v]


class Package(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    actions: Dict[str, Action] = Field(default_factory=dict)
    sequences: Dict[str, Sequence] = Field(default_factory=dict)

    @field_validator("actions", "sequences", mode="before")
    @classmethod
    def _none_mapping(cls, v: Any) -> Any:
        return {} if v is None else v


class Manifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    packages: Dict[str, Package] = Field(default_factory=dict)

    @field_validator("packages", mode="before")
    @classmethod
    def _none_packages(cls, v: Any) -> Any:
        return {} if v is None else v
