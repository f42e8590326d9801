"""Immutable snapshot of configured CSP directive values and feature toggles."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

# Value-bearing directives in header order, mapped to registry field names.
DIRECTIVE_FIELDS: dict[str, str] = {
    "default-src": "default_src",
    "script-src": "script_src",
    "style-src": "style_src",
    "img-src": "img_src",
    "font-src": "font_src",
    "connect-src": "connect_src",
    "frame-src": "frame_src",
    "frame-ancestors": "frame_ancestors",
    "object-src": "object_src",
    "media-src": "media_src",
    "worker-src": "worker_src",
    "manifest-src": "manifest_src",
    "base-uri": "base_uri",
    "form-action": "form_action",
    "child-src": "child_src",
}


def _normalize_key(key: str) -> str:
    return key.replace("-", "").replace("_", "").lower()


class DirectiveRegistry(BaseModel):
    """Configured base values for each CSP directive plus feature flags.

    Frozen, so two registries with the same field values compare equal and
    hash alike. Directive strings are stored as configured; whitespace
    cleanup happens when the header is composed.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = False

    default_src: str = ""
    script_src: str = ""
    style_src: str = ""
    img_src: str = ""
    font_src: str = ""
    connect_src: str = ""
    frame_src: str = ""
    frame_ancestors: str = ""
    object_src: str = ""
    media_src: str = ""
    worker_src: str = ""
    manifest_src: str = ""
    base_uri: str = ""
    form_action: str = ""
    child_src: str = ""

    # Kept as a string: the CMS field stores "1", "true", "0", ...
    upgrade_insecure_requests: str = ""
    block_all_mixed_content: bool = False
    report_uri: str = ""

    enable_google_analytics: bool = False
    enable_google_signals: bool = False
    enable_nonce: bool = False
    google_tag_manager_id: str = ""

    def directive_value(self, directive: str) -> str:
        """Return the configured value for a CSP directive name, or ""."""
        field_name = DIRECTIVE_FIELDS.get(directive.lower())
        if field_name is None:
            return ""
        return getattr(self, field_name)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> DirectiveRegistry:
        """Build a registry from loosely-keyed settings data.

        Accepts CSP spellings (``default-src``), field names (``default_src``)
        and CMS field names (``DefaultSrc``, ``GoogleTagManagerID``).
        ``None`` values fall back to the field default; unknown keys are dropped.
        """
        if not data:
            return cls()

        by_normalized = {_normalize_key(name): name for name in cls.model_fields}
        values: dict[str, Any] = {}
        for raw_key, raw_value in data.items():
            if raw_value is None or not isinstance(raw_key, str):
                continue
            field_name = by_normalized.get(_normalize_key(raw_key))
            if field_name is None:
                continue
            if cls.model_fields[field_name].annotation in (str, "str"):
                raw_value = raw_value if isinstance(raw_value, str) else str(raw_value)
            values[field_name] = raw_value
        return cls.model_validate(values)
