"""Rule-based screening and cleaning for admin-edited and visitor-submitted text."""

from __future__ import annotations

import html
import re
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

import bleach
from bleach.linkifier import DEFAULT_CALLBACKS
from markupsafe import Markup

RICH_TEXT_TAGS = {
    "p", "br", "strong", "em", "b", "i", "u", "ol", "ul", "li", "a",
    "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "code",
}
RICH_TEXT_ATTRS = {
    "*": ["class"],
    "a": ["href", "title", "target", "rel"],
}
RICH_TEXT_PROTOCOLS = {"http", "https", "mailto", "tel"}


@dataclass
class ThreatMatch:
    """A suspicious fragment found in submitted text."""

    category: str
    label: str
    match: str
    rule_id: str

    def to_dict(self) -> dict:
        return asdict(self)


class InputSanitizer:
    """Detects injection attempts and produces safe text or HTML."""

    def __init__(self) -> None:
        self._rules = self._build_rules()

    def _build_rules(self) -> list[dict]:
        rules: list[dict] = [
            {
                "id": "script-injection",
                "label": "Script or markup injection",
                "category": "xss",
                "patterns": [
                    r"<\s*script\b",
                    r"<\s*iframe\b",
                    r"<\s*object\b",
                    r"<\s*embed\b",
                    r"<\s*(?:link|meta|style)\b",
                    r"\bjavascript\s*:",
                    r"\bvbscript\s*:",
                    r"data\s*:\s*text/html",
                    r"\bon[a-z]+\s*=",
                    r"expression\s*\(",
                ],
            },
            {
                "id": "sql-injection",
                "label": "SQL injection",
                "category": "sql_injection",
                "patterns": [
                    r"\bunion\b.+\bselect\b",
                    r"\bselect\b.+\bfrom\b",
                    r"\binsert\b.+\binto\b",
                    r"\bdelete\b.+\bfrom\b",
                    r"\bdrop\b\s+\btable\b",
                    r"\b(?:alter|create)\b\s+\btable\b",
                    r"(['\"])\s*(?:or|and)\s*\1?\s*\d*\s*\1?\s*=",
                    r"(['\"])\s*;\s*(?:drop|delete|update|insert)\b",
                    r";\s*--",
                ],
            },
            {
                "id": "path-traversal",
                "label": "Path traversal",
                "category": "path_traversal",
                "patterns": [
                    r"\.\.[\\/]",
                    r"%2e%2e",
                    r"%252e%252e",
                    r"\.\.%2f",
                    r"\.\.%5c",
                ],
            },
            {
                "id": "command-injection",
                "label": "Command injection",
                "category": "command_injection",
                "patterns": [
                    r"[;&|`]\s*(?:cat|ls|rm|curl|wget|nc|bash|sh|sudo|chmod|whoami)\b",
                    r"\$\([^)]*\)",
                ],
            },
        ]
        for rule in rules:
            rule["compiled"] = [re.compile(pattern, re.IGNORECASE) for pattern in rule["patterns"]]
        return rules

    def inspect(self, value: Optional[str]) -> List[ThreatMatch]:
        """Return every rule that matches ``value`` (one match per rule)."""
        if not value:
            return []
        found: List[ThreatMatch] = []
        for rule in self._rules:
            for pattern in rule["compiled"]:
                hit = pattern.search(value)
                if hit:
                    found.append(ThreatMatch(
                        category=rule["category"],
                        label=rule["label"],
                        match=hit.group(0).strip()[:80],
                        rule_id=rule["id"],
                    ))
                    break
        return found

    def inspect_many(self, values: Iterable[Optional[str]]) -> List[ThreatMatch]:
        threats: List[ThreatMatch] = []
        for value in values:
            threats.extend(self.inspect(value))
        return threats

    @staticmethod
    def clean_text(value: Optional[str], max_length: Optional[int] = None) -> str:
        """Strip all markup and collapse runs of spaces."""
        if value is None:
            return ""
        cleaned = html.unescape(bleach.clean(str(value), tags=set(), strip=True))
        cleaned = re.sub(r"[ \t]+", " ", cleaned).strip()
        if max_length is not None:
            cleaned = cleaned[:max_length]
        return cleaned

    @staticmethod
    def clean_html(value: Optional[str]) -> str:
        """Keep a small rich-text subset; everything else is stripped."""
        if value is None:
            return ""
        return bleach.clean(
            str(value),
            tags=RICH_TEXT_TAGS,
            attributes=RICH_TEXT_ATTRS,
            protocols=RICH_TEXT_PROTOCOLS,
            strip=True,
        )


def _linkify_target_blank(attrs, new=False):
    href_key = (None, "href")
    if not attrs.get(href_key):
        return attrs
    attrs[(None, "target")] = "_blank"
    rel_values = set(filter(None, (attrs.get((None, "rel")) or "").split()))
    rel_values.update({"noopener", "noreferrer"})
    attrs[(None, "rel")] = " ".join(sorted(rel_values))
    return attrs


LINKIFY_CALLBACKS = list(DEFAULT_CALLBACKS) + [_linkify_target_blank]


def nl2br(text) -> Markup:
    """Template filter: sanitize, keep line breaks and link bare URLs."""
    if text is None:
        return Markup("")
    cleaned = InputSanitizer.clean_html(text)
    cleaned = cleaned.replace("\r\n", "\n").replace("\n", "<br>")
    linked = bleach.linkify(cleaned, callbacks=LINKIFY_CALLBACKS, skip_tags=["a", "code"])
    return Markup(linked)
