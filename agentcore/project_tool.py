"""
Agent Core — Project Tool

Creates and lists project directories under the sandbox root. Each
project carries a `project.yaml` manifest (name, description, status,
created_at) so listing needs no database.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import yaml

from agentcore.errors import NotFoundError, ToolExecutionError, ValidationError
from agentcore.tools import SandboxTool

MANIFEST = "project.yaml"
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class ProjectTool(SandboxTool):
    name = "project"
    description = "create and list project directories (default base: projects/)"
    actions = {"create": "write", "list": "read", "get": "read"}
    default_action = "list"

    base_dir = "projects"

    def _action_create(self, params: dict[str, Any]) -> dict[str, Any]:
        name = str(self.require(params, "name"))
        if not _NAME_RE.match(name):
            raise ValidationError(f"Invalid project name: {name!r}", name=name)
        path = params.get("path") or f"{self.base_dir}/{name}"
        target, rel = self.check_path(path, "write")

        manifest_path = target / MANIFEST
        if manifest_path.exists():
            raise ToolExecutionError(f'Project with name "{name}" already exists', name=name)

        manifest = {
            "name": name,
            "description": params.get("description", ""),
            "path": rel,
            "status": "active",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        target.mkdir(parents=True, exist_ok=True)
        with open(manifest_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(manifest, f, sort_keys=False)
        return manifest

    def _action_list(self, params: dict[str, Any]) -> dict[str, Any]:
        base, rel = self.check_path(params.get("path") or self.base_dir, "read")
        projects = []
        if base.is_dir():
            for manifest_path in sorted(base.glob(f"*/{MANIFEST}")):
                with open(manifest_path, encoding="utf-8") as f:
                    manifest = yaml.safe_load(f) or {}
                if manifest.get("status", "active") == "active":
                    projects.append(manifest)
        return {"path": rel, "projects": projects}

    def _action_get(self, params: dict[str, Any]) -> dict[str, Any]:
        name = str(self.require(params, "name"))
        target, rel = self.check_path(params.get("path") or f"{self.base_dir}/{name}", "read")
        manifest_path = target / MANIFEST
        if not manifest_path.is_file():
            raise NotFoundError(f"Project not found: {name}", name=name)
        with open(manifest_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
