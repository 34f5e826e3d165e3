"""Read per-document scope settings from a YAML frontmatter block."""
import logging
import re
from typing import Any, Dict, Optional

import yaml

from .models import ScopedSettings

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?P<body>.*?)\r?\n(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)",
    re.DOTALL,
)


def parse_frontmatter(text: str) -> Optional[Dict[str, Any]]:
    """Return the leading YAML block of a document as a dict, if there is one."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None

    try:
        data = yaml.safe_load(match.group("body"))
    except yaml.YAMLError as e:
        logger.debug(f"Ignoring unparsable frontmatter: {e}")
        return None

    return data if isinstance(data, dict) else None


def _field(frontmatter: Dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = frontmatter.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def read_scoped_settings(text: str) -> Optional[ScopedSettings]:
    """Scope overrides declared by a document.

    Recognized keys are ``bibliography``, ``csl`` or ``citation-style``, and
    ``lang`` or ``citation-language``.

    Returns:
        ScopedSettings, or None when the document declares no override
    """
    frontmatter = parse_frontmatter(text)
    if not frontmatter:
        return None

    settings = ScopedSettings(
        bibliography=_field(frontmatter, "bibliography"),
        style=_field(frontmatter, "csl", "citation-style"),
        lang=_field(frontmatter, "lang", "citation-language"),
    )
    return None if settings.is_empty() else settings
