"""Local file provider."""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from deploy_orchestrator.engine.errors import ProviderError
from deploy_orchestrator.engine.providers import CreateResult, ResourceProvider

if TYPE_CHECKING:
    from deploy_orchestrator.engine.providers import ProviderContext

logger = logging.getLogger(__name__)


class LocalFileProvider(ResourceProvider):
    """``Local::File``: a text file on the local filesystem.

    Properties:
        path: File path, relative paths resolve against ``base_dir``
        content: Text written to the file (default empty)

    Moving a file (changing ``path``) is a replacement.  The physical id is
    the absolute path.
    """

    resource_type = "Local::File"
    replace_on = frozenset({"path"})
    permissions = {
        "create": ("fs:write",),
        "update": ("fs:write",),
        "delete": ("fs:delete",),
    }

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def validate(self, name: str, properties: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        path = properties.get("path")
        if path is None:
            errors.append("'path' is required")
        elif not isinstance(path, str | dict) or path == "":
            # dicts are references, resolved at apply time
            errors.append("'path' must be a non-empty string")
        content = properties.get("content", "")
        if not isinstance(content, str | dict):
            errors.append(f"'content' must be a string, got {type(content).__name__}")
        return errors

    def _resolve_path(self, raw: Any) -> Path:
        path = Path(str(raw))
        if not path.is_absolute():
            path = self._base_dir / path
        return path.resolve()

    @staticmethod
    def _write(path: Path, content: str) -> dict[str, Any]:
        data = content.encode("utf-8")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
            tmp_file = Path(tmp_path)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                tmp_file.replace(path)
            finally:
                with contextlib.suppress(FileNotFoundError):
                    tmp_file.unlink()
        except OSError as exc:
            raise ProviderError(f"Failed to write {path}: {exc}") from exc
        return {"path": str(path), "sha256": hashlib.sha256(data).hexdigest()}

    def create(self, ctx: ProviderContext, name: str, properties: dict[str, Any]) -> CreateResult:
        _ = ctx
        path = self._resolve_path(properties["path"])
        outputs = self._write(path, str(properties.get("content", "")))
        logger.debug("Wrote %s for %s", path, name)
        return CreateResult(physical_id=str(path), outputs=outputs)

    def update(
        self, ctx: ProviderContext, physical_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        _ = ctx
        return self._write(Path(physical_id), str(properties.get("content", "")))

    def delete(self, ctx: ProviderContext, physical_id: str) -> None:
        _ = ctx
        try:
            Path(physical_id).unlink(missing_ok=True)
        except OSError as exc:
            raise ProviderError(f"Failed to delete {physical_id}: {exc}") from exc
        logger.debug("Deleted %s", physical_id)
