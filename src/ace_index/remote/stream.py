"""Extraction of the enhanced prompt from a JSON-lines chat stream.

Each stream line is a JSON object that may carry a ``text`` fragment and a
``nodes`` list. Text fragments are accumulated in order; parsing stops at the
first complete ``<augment-enhanced-prompt>...</augment-enhanced-prompt>`` pair.
When the stream ends without an early match, the last non-empty ``nodes`` list
is searched first, then the accumulated text, then the text between the
``### BEGIN RESPONSE ###`` and ``### END RESPONSE ###`` markers.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable

OPEN_TAG = "<augment-enhanced-prompt>"
CLOSE_TAG = "</augment-enhanced-prompt>"
TEXT_NODE_TYPE = 0

_TAGGED = re.compile(re.escape(OPEN_TAG) + r"(.*?)" + re.escape(CLOSE_TAG), re.DOTALL)
_RESPONSE_SECTION = re.compile(r"### BEGIN RESPONSE ###(.*?)### END RESPONSE ###", re.DOTALL)


class PromptExtractionError(Exception):
    """Raised when no enhanced prompt can be found in the response."""


def extract_tagged(text: str) -> str | None:
    """Return the stripped content of the first tagged section, if non-empty."""
    match = _TAGGED.search(text)
    if match is None:
        return None
    content = match.group(1).strip()
    return content or None


def extract_from_text(text: str) -> str:
    """Extract the enhanced prompt from a complete response body."""
    tagged = extract_tagged(text)
    if tagged is not None:
        return tagged
    section = _RESPONSE_SECTION.search(text)
    if section is not None:
        body = section.group(1).strip()
        if _TAGGED.search(body) is None and body:
            return body
    raise PromptExtractionError(
        f"Could not extract the enhanced prompt from the response: {text[:500]}"
    )


class EnhancedPromptParser:
    """Incremental parser for one chat stream."""

    def __init__(self) -> None:
        self._text_parts: list[str] = []
        self._last_nodes: list[object] = []
        self._result: str | None = None

    @property
    def text(self) -> str:
        """Return all text fragments seen so far."""
        return "".join(self._text_parts)

    def feed_line(self, line: str) -> str | None:
        """Consume one stream line; return the prompt as soon as it is complete."""
        if self._result is not None:
            return self._result
        stripped = line.strip()
        if not stripped:
            return None
        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        fragment = payload.get("text")
        if isinstance(fragment, str) and fragment:
            self._text_parts.append(fragment)
        nodes = payload.get("nodes")
        if isinstance(nodes, list) and nodes:
            self._last_nodes = nodes
        if CLOSE_TAG in self.text:
            self._result = extract_tagged(self.text)
        return self._result

    def feed(self, lines: Iterable[str]) -> str:
        """Consume lines until an early match or the end of the stream."""
        for line in lines:
            if self.feed_line(line) is not None:
                break
        return self.finish()

    def finish(self) -> str:
        """Return the extracted prompt after the stream has ended."""
        if self._result is not None:
            return self._result
        for node in self._last_nodes:
            if not isinstance(node, dict) or node.get("type") != TEXT_NODE_TYPE:
                continue
            content = node.get("content")
            if isinstance(content, str):
                tagged = extract_tagged(content)
                if tagged is not None:
                    return tagged
        return extract_from_text(self.text)
