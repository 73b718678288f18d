"""Signature templates: resolution, render context and placeholder substitution.

Templates are plain HTML with literal ``{Token}`` placeholders. Resolution
order for a template identifier:
    1. Built-in templates shipped in ``sigsync/templates``
    2. ``<template_dir>/<id>.html`` (user-authored)
    3. Google Drive file id (fetched once, cached in memory)
"""
from __future__ import annotations
import logging
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional, Protocol

import requests

from .exceptions import GoogleAPIError, TemplateNotFound
from .models import Identity

if TYPE_CHECKING:
    from sigsync.config.settings import SyncSettings

logger = logging.getLogger(__name__)

BUILTIN_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

FONT_PLACEHOLDER = "{PrimaryFont}"

RECOGNIZED_PLACEHOLDERS = (
    "{FullName}",
    "{FirstName}",
    "{LastName}",
    "{Email}",
    "{JobTitle}",
    "{Department}",
    "{Phone}",
    "{Mobile}",
    "{CompanyName}",
    "{CompanyLogoUrl}",
    "{CompanyAddress1}",
    "{CompanyAddress2}",
    "{CompanyWebsite}",
    "{CompanyWebsiteDisplay}",
    "{PrimaryColor}",
    "{SecondaryColor}",
    "{TextColor}",
    FONT_PLACEHOLDER,
    "{NameFontSize}",
    "{JobTitleFontSize}",
    "{TextFontSize}",
    "{MaxWidth}",
    "{LineHeight}",
    "{LogoWidth}",
    "{LogoRadius}",
)

# Defaults applied under the organization and identity values
BUILTIN_TEMPLATE_DEFAULTS: Dict[str, Dict[str, str]] = {
    "card": {"{LogoWidth}": "100px", "{LogoRadius}": "4px"},
    "minimalist": {"{MaxWidth}": "420px"},
    "modern": {"{LogoWidth}": "80px", "{LogoRadius}": "50%"},
}

_TOKEN_PATTERN = re.compile(r"\{[A-Za-z0-9_]+\}")
_SINGLE_QUOTED = re.compile(r"'([^']+)'")
_TEMPLATE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

RenderContext = Dict[str, str]


def normalize_font_quotes(value: str) -> str:
    """Rewrite single-quoted font family names to double quotes.

    ``'Segoe UI', Arial`` and ``"Segoe UI", Arial`` render to the same bytes,
    which keeps change detection stable across runs.
    """
    return _SINGLE_QUOTED.sub(r'"\1"', value)


class TemplateRenderer:
    """Literal placeholder substitution.

    Every occurrence of a recognized token is replaced in a single pass, so
    substituted values are never themselves scanned for tokens. Recognized
    tokens without a value become ""; unrecognized tokens are left as-is.
    """

    def __init__(self, placeholders: tuple[str, ...] = RECOGNIZED_PLACEHOLDERS):
        self.placeholders = frozenset(placeholders)

    def render(self, template_text: str, context: Mapping[str, Optional[str]]) -> str:
        def _substitute(match: re.Match) -> str:
            token = match.group(0)
            if token not in self.placeholders:
                return token
            value = context.get(token) or ""
            if token == FONT_PLACEHOLDER and value:
                value = normalize_font_quotes(value)
            return value

        return _TOKEN_PATTERN.sub(_substitute, template_text)


def build_render_context(
    identity: Identity,
    settings: Optional["SyncSettings"] = None,
    template_defaults: Optional[Mapping[str, str]] = None,
) -> RenderContext:
    """Merge template defaults, organization branding and identity attributes.

    Later sources win; empty values never override a non-empty one. Without
    settings only the identity attributes and template defaults are used.
    """
    branding = (settings.branding if settings else None) or {}
    organization = {
        "{CompanyName}": settings.company_name if settings else "",
        "{CompanyLogoUrl}": settings.company_logo_url if settings else "",
        "{CompanyAddress1}": settings.company_address1 if settings else "",
        "{CompanyAddress2}": settings.company_address2 if settings else "",
        "{CompanyWebsite}": settings.company_website if settings else "",
        "{CompanyWebsiteDisplay}": settings.company_website_display if settings else "",
        "{PrimaryColor}": branding.get("primary_color", ""),
        "{SecondaryColor}": branding.get("secondary_color", ""),
        "{TextColor}": branding.get("text_color", ""),
        FONT_PLACEHOLDER: branding.get("primary_font", ""),
        "{NameFontSize}": branding.get("name_font_size", ""),
        "{JobTitleFontSize}": branding.get("job_title_font_size", ""),
        "{TextFontSize}": branding.get("text_font_size", ""),
        "{MaxWidth}": branding.get("max_width", ""),
        "{LineHeight}": branding.get("line_height", ""),
        "{LogoWidth}": branding.get("logo_width", ""),
        "{LogoRadius}": branding.get("logo_radius", ""),
    }
    personal = {
        "{FullName}": identity.full_name,
        "{FirstName}": identity.given_name,
        "{LastName}": identity.family_name,
        "{Email}": identity.email,
        "{JobTitle}": identity.job_title,
        "{Department}": identity.department,
        "{Phone}": identity.phone,
        "{Mobile}": identity.mobile,
    }

    context: RenderContext = {token: "" for token in RECOGNIZED_PLACEHOLDERS}
    for source in (template_defaults or {}, organization, personal):
        for token, value in source.items():
            if value:
                context[token] = value
    return context


class DriveFileSource(Protocol):
    """Anything that can fetch a Drive file's text content by id."""

    def fetch_file_text(self, file_id: str) -> str: ...


class TemplateStore:
    """Resolve template identifiers to HTML text."""

    def __init__(
        self,
        template_dir: str | Path | None = None,
        drive: Optional[DriveFileSource] = None,
        cache_ttl: int = 21600,
        builtin_dir: Path = BUILTIN_TEMPLATE_DIR,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.template_dir = Path(template_dir) if template_dir else None
        self.drive = drive
        self.cache_ttl = cache_ttl
        self.builtin_dir = builtin_dir
        self._clock = clock
        self._cache: Dict[str, tuple[float, str]] = {}
        self._builtins = self._load_builtins()

    def _load_builtins(self) -> Dict[str, str]:
        templates = {}
        if self.builtin_dir.is_dir():
            for path in sorted(self.builtin_dir.glob("*.html")):
                templates[path.stem] = path.read_text(encoding="utf-8")
        logger.debug("Loaded %d built-in templates", len(templates))
        return templates

    @property
    def builtin_ids(self) -> list[str]:
        return sorted(self._builtins)

    def _local_path(self, template_id: str) -> Optional[Path]:
        if not self.template_dir or not _TEMPLATE_ID_PATTERN.match(template_id) or ".." in template_id:
            return None
        path = self.template_dir / f"{template_id}.html"
        return path if path.is_file() else None

    def _from_cache(self, template_id: str) -> Optional[str]:
        entry = self._cache.get(template_id)
        if entry is None:
            return None
        stored_at, text = entry
        if self._clock() - stored_at >= self.cache_ttl:
            del self._cache[template_id]
            return None
        return text

    def resolve(self, template_id: str) -> str:
        """Return the HTML text for a template identifier.

        Raises:
            TemplateNotFound: If no source has the template
        """
        if not template_id:
            raise TemplateNotFound(template_id, "empty template identifier")

        if template_id in self._builtins:
            return self._builtins[template_id]

        local = self._local_path(template_id)
        if local is not None:
            return local.read_text(encoding="utf-8")

        cached = self._from_cache(template_id)
        if cached is not None:
            return cached

        if self.drive is None:
            raise TemplateNotFound(template_id, "not a built-in or local template and Drive lookup is disabled")

        try:
            text = self.drive.fetch_file_text(template_id)
        except GoogleAPIError as e:
            raise TemplateNotFound(template_id, f"Drive lookup failed ({e.status_code}): {e.message}")
        except requests.RequestException as e:
            raise TemplateNotFound(template_id, f"Drive lookup failed: {e}")

        self._cache[template_id] = (self._clock(), text)
        logger.info("Loaded template %s from Drive (cached for %ss)", template_id, self.cache_ttl)
        return text

    def template_defaults(self, template_id: str) -> Dict[str, str]:
        return dict(BUILTIN_TEMPLATE_DEFAULTS.get(template_id, {}))

    def list_templates(self, preview_length: int = 50) -> Dict[str, str]:
        """Map available built-in and local template ids to a short preview."""
        available = dict(self._builtins)
        if self.template_dir and self.template_dir.is_dir():
            for path in sorted(self.template_dir.glob("*.html")):
                available.setdefault(path.stem, path.read_text(encoding="utf-8"))
        return {
            template_id: " ".join(text.split())[:preview_length]
            for template_id, text in sorted(available.items())
        }
