"""
Agent Core — Tool Call Extraction

Deterministic extraction of `{tool, action, params}` triples from
free-form reasoning-backend output. The producer is non-deterministic,
so the grammar is a versioned contract: prompts advertise
GRAMMAR_VERSION and the executor only ever relies on this module.

Grammar "xml/1":

    <tool name="filesystem" action="write">
      <path>src/app.py</path>
      <content><![CDATA[print("hi")]]></content>
    </tool>

    <tool name="git" action="status"/>          # no body, no params

  - `name` (or `tool`) and `action` attributes address the call
  - any other attribute becomes a param
  - each simple inner element <key>value</key> becomes a param
  - CDATA sections are unwrapped before inner elements are read
  - calls are returned in document order; text outside <tool> is ignored
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any
from xml.sax.saxutils import escape, quoteattr

GRAMMAR_VERSION = "xml/1"

_TOOL_RE = re.compile(r"<tool\s+([^>]*?)\s*(?:/>|>(.*?)</tool>)", re.DOTALL)
_ATTR_RE = re.compile(r'(\w+)="([^"]*)"')
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_INNER_RE = re.compile(r"<(\w+)>(.*?)</\1>", re.DOTALL)


@dataclass(frozen=True)
class ToolCall:
    """One addressed tool invocation."""
    tool: str
    action: str = ""
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"tool": self.tool, "action": self.action, "params": dict(self.params)}


def extract_tool_calls(text: str | None) -> list[ToolCall]:
    """Parse every <tool> block in `text`. Empty or None input → []."""
    if not text:
        return []

    calls = []
    for match in _TOOL_RE.finditer(text):
        attrs = dict(_ATTR_RE.findall(match.group(1)))
        tool = attrs.pop("name", None) or attrs.pop("tool", "")
        action = attrs.pop("action", "")
        params: dict[str, Any] = dict(attrs)
        for key, value in _inner_elements(match.group(2) or ""):
            params[key] = value
        calls.append(ToolCall(tool=tool, action=action, params=params))
    return calls


def _inner_elements(content: str) -> list[tuple[str, str]]:
    # CDATA payloads may contain '<' so they are swapped out before the
    # element scan and restored in the values.
    placeholders: dict[str, str] = {}

    def _stash(m: re.Match) -> str:
        key = f"\x00{len(placeholders)}\x00"
        placeholders[key] = m.group(1)
        return key

    processed = _CDATA_RE.sub(_stash, content)
    elements = []
    for key, value in _INNER_RE.findall(processed):
        if "<" in value:
            continue
        for ph, raw in placeholders.items():
            value = value.replace(ph, raw)
        elements.append((key, value))
    return elements


def format_tool_result(tool: str, action: str, success: bool,
                       output: str = "", error: str = "") -> str:
    """Render a tool result in the same grammar, for feeding back to a model."""
    head = f"<result tool={quoteattr(tool)} action={quoteattr(action)} success=\"{str(success).lower()}\">"
    if success:
        return f"{head}\n  <output>{escape(output)}</output>\n</result>"
    return f"{head}\n  <error>{escape(error)}</error>\n</result>"
