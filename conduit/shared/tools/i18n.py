"""Localized labels for tool descriptors.

Catalogs are nested YAML files under ``locales/`` keyed by locale
code. ``Translator.t`` raises KeyError for unknown keys or missing
placeholder values; callers choose their own fallback text.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).parent / "locales"
FALLBACK_LOCALE = "en"


def load_catalog(locale: str, locales_dir: Path = LOCALES_DIR) -> dict[str, Any]:
    """Load one locale catalog, or {} when absent or unparsable."""
    path = locales_dir / f"{locale}.yaml"
    if not path.is_file():
        logger.debug("No catalog for locale %s at %s", locale, path)
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        logger.warning("YAML parse error in catalog %s: %s", path, exc)
        return {}
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read catalog %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Catalog %s is not a mapping", path)
        return {}
    return data


def _lookup(catalog: dict[str, Any], key: str) -> str | None:
    node: Any = catalog
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node if isinstance(node, str) else None


class Translator:
    """Dotted-key lookup over a locale catalog with an English fallback."""

    def __init__(
        self,
        locale: str = FALLBACK_LOCALE,
        *,
        catalogs: dict[str, dict[str, Any]] | None = None,
        locales_dir: Path = LOCALES_DIR,
    ) -> None:
        self._locale = locale
        self._locales_dir = locales_dir
        self._catalogs: dict[str, dict[str, Any]] = dict(catalogs or {})

    @property
    def locale(self) -> str:
        return self._locale

    def _catalog(self, locale: str) -> dict[str, Any]:
        if locale not in self._catalogs:
            self._catalogs[locale] = load_catalog(locale, self._locales_dir)
        return self._catalogs[locale]

    def t(self, key: str, params: dict[str, str] | None = None) -> str:
        """Translate ``key``, interpolating ``{name}`` placeholders from params."""
        template = _lookup(self._catalog(self._locale), key)
        if template is None and self._locale != FALLBACK_LOCALE:
            template = _lookup(self._catalog(FALLBACK_LOCALE), key)
        if template is None:
            raise KeyError(key)
        return template.format_map(params or {})
