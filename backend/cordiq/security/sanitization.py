"""Input sanitization for stored draft HTML and LLM prompts.

Two unrelated threats share this module:

- Draft bodies are user-authored HTML that is stored and later rendered, so
  they are reduced to an allowlist of formatting tags before persisting.
- Contact fields are interpolated into LLM prompts, so instruction-like
  phrases are blanked out and lengths are capped before generation.
"""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset(
    {
        "b", "i", "em", "strong", "u", "s", "sub", "sup",
        "p", "br", "ul", "ol", "li", "blockquote",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "a", "code", "pre", "hr",
    }
)
ALLOWED_ATTRIBUTES: dict[str, frozenset[str]] = {"a": frozenset({"href", "target", "rel"})}
ALLOWED_SCHEMES = frozenset({"http", "https", "mailto"})

# Removed together with everything inside them
DROPPED_WITH_CONTENT = ("script", "style", "iframe", "object", "embed", "noscript", "textarea", "title", "head")

_URL_NOISE = re.compile(r"[\x00-\x20]+")


def _is_safe_href(href: str) -> bool:
    scheme = urlsplit(_URL_NOISE.sub("", href)).scheme.lower()
    return scheme == "" or scheme in ALLOWED_SCHEMES


def sanitize_html(html: str) -> str:
    """Reduce draft HTML to the formatting allowlist.

    Disallowed tags are unwrapped (their text survives) except for
    script-like containers, which are dropped whole. Links keep only safe
    schemes, always get ``rel="noopener noreferrer"`` and default to
    ``target="_blank"``.

    Args:
        html: Raw HTML from the editor.

    Returns:
        HTML safe to store and render.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all(DROPPED_WITH_CONTENT):
        if not tag.decomposed:
            tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue

        allowed = ALLOWED_ATTRIBUTES.get(tag.name, frozenset())
        tag.attrs = {name: value for name, value in tag.attrs.items() if name in allowed}

        if tag.name == "a":
            href = tag.get("href")
            if isinstance(href, str) and not _is_safe_href(href):
                del tag["href"]
            tag["rel"] = "noopener noreferrer"
            if not tag.get("target"):
                tag["target"] = "_blank"

    return str(soup)


@dataclass(frozen=True)
class _SuspiciousPattern:
    pattern: re.Pattern[str]
    reason: str


REMOVED_MARKER = "[CONTENT REMOVED FOR SECURITY]"

_SUSPICIOUS_PATTERNS = (
    _SuspiciousPattern(re.compile(r"ignore\s+(previous|all|above).*?(\.|$)", re.I), "prompt injection attempt"),
    _SuspiciousPattern(re.compile(r"disregard\s+(previous|all|above).*?(\.|$)", re.I), "prompt injection attempt"),
    _SuspiciousPattern(re.compile(r"forget\s+(everything|previous|all).*?(\.|$)", re.I), "prompt injection attempt"),
    _SuspiciousPattern(re.compile(r"you\s+are\s+now.*?(\.|$)", re.I), "role manipulation attempt"),
    _SuspiciousPattern(re.compile(r"new\s+instructions.*?(\.|$)", re.I), "instruction override attempt"),
    _SuspiciousPattern(re.compile(r"system\s*prompt.*?(\.|$)", re.I), "system prompt extraction attempt"),
    _SuspiciousPattern(re.compile(r"system\s*:.*?(\.|$)", re.I), "role injection attempt"),
    _SuspiciousPattern(re.compile(r"assistant\s*:.*?(\.|$)", re.I), "role injection attempt"),
    _SuspiciousPattern(re.compile(r"\bSUBJECT\s*:.*?$", re.I | re.M), "delimiter injection attempt"),
    _SuspiciousPattern(re.compile(r"\bBODY\s*:.*?$", re.I | re.M), "delimiter injection attempt"),
)


def sanitize_prompt_input(value: str | None, field_name: str, max_length: int) -> str | None:
    """Clean a user-supplied value before it is placed in an LLM prompt.

    Trims, truncates to ``max_length``, blanks out the first occurrence of
    each instruction-like phrase and collapses runs of blank lines.

    Args:
        value: The raw input.
        field_name: Name used in log messages.
        max_length: Maximum characters kept.

    Returns:
        The sanitized value; empty or None input is returned unchanged.
    """
    if not value:
        return value

    sanitized = value.strip()
    if len(sanitized) > max_length:
        logger.warning(
            "Input for %s exceeds maximum length of %d characters. Truncating.",
            field_name,
            max_length,
        )
        sanitized = sanitized[:max_length]

    for suspicious in _SUSPICIOUS_PATTERNS:
        if suspicious.pattern.search(sanitized):
            logger.warning("Suspicious pattern detected in %s: %s", field_name, suspicious.reason)
            sanitized = suspicious.pattern.sub(REMOVED_MARKER, sanitized, count=1)

    return re.sub(r"\n{3,}", "\n\n", sanitized)
