"""
Agent Core — Filesystem Tool

read / write / list under the sandbox root. Path safety is checked
before any I/O; "not found" is a NotFoundError, never a ValidationError.
"""

from __future__ import annotations

from typing import Any

from agentcore.errors import NotFoundError, ToolExecutionError
from agentcore.tools import SandboxTool


class FileSystemTool(SandboxTool):
    name = "filesystem"
    description = "read, write and list files relative to the workspace root"
    actions = {"read": "read", "write": "write", "list": "read"}
    default_action = "read"

    def _action_read(self, params: dict[str, Any]) -> dict[str, Any]:
        target, rel = self.check_path(self.require(params, "path", "file"), "read")
        if not target.is_file():
            raise NotFoundError(f"File not found: {rel}", path=rel)
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ToolExecutionError(f"Could not read {rel}: {e}", path=rel) from e
        return {"path": rel, "content": content}

    def _action_write(self, params: dict[str, Any]) -> dict[str, Any]:
        target, rel = self.check_path(self.require(params, "path", "file"), "write")
        content = params.get("content", "")
        if content is None:
            content = ""
        if target.exists() and not self.as_bool(params.get("overwrite", False)):
            raise ToolExecutionError(
                f"File already exists: {rel} (pass overwrite=true to replace it)",
                path=rel,
            )
        if target.is_dir():
            raise ToolExecutionError(f"Path is a directory: {rel}", path=rel)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(str(content), encoding="utf-8")
        except OSError as e:
            raise ToolExecutionError(f"Could not write {rel}: {e}", path=rel) from e
        return {"path": rel, "bytes": len(str(content).encode("utf-8"))}

    def _action_list(self, params: dict[str, Any]) -> dict[str, Any]:
        target, rel = self.check_path(params.get("path") or ".", "read")
        if not target.is_dir():
            raise NotFoundError(f"Directory not found: {rel}", path=rel)
        entries = [
            {"name": child.name, "type": "directory" if child.is_dir() else "file"}
            for child in sorted(target.iterdir(), key=lambda p: p.name)
        ]
        return {"path": rel, "entries": entries}
