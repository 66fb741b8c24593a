"""
Workspace Sandbox

Every tool path goes through Workspace.resolve, which pins it under a fixed root
directory. Anything that would land outside the root, including via symlinks,
is rejected with WorkspaceSecurityError.
"""

from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Optional, Union
import os
import tempfile
import threading

import structlog

from docqa.core.exceptions import ToolExecutionError, WorkspaceSecurityError
from docqa.core.metrics import SECURITY_DENIALS

logger = structlog.get_logger(__name__)


class Workspace:
    """A directory that tools may read and write, and nothing else."""

    def __init__(self, root: Union[str, Path], create: bool = True):
        root = Path(root)
        if create:
            root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()

    def resolve(self, path: Union[str, Path] = ".") -> Path:
        """Resolve a workspace-relative path to an absolute path inside the root.

        Args:
            path: Relative path supplied by a caller (often the model)

        Returns:
            Absolute path with symlinks followed

        Raises:
            WorkspaceSecurityError: If the path is absolute, contains NUL bytes,
                or resolves outside the root
        """
        raw = str(path) if path is not None else "."
        if raw == "":
            raw = "."

        if "\x00" in raw:
            self._deny(raw.replace("\x00", "\\0"), "nul_byte")

        if PurePosixPath(raw).is_absolute() or PureWindowsPath(raw).is_absolute() \
                or PureWindowsPath(raw).drive:
            self._deny(raw, "absolute_path")

        candidate = (self.root / raw).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            self._deny(raw, "outside_root")

        return candidate

    def relative(self, absolute: Union[str, Path]) -> str:
        """Render an absolute path inside the root as a workspace-relative posix path."""
        relative = Path(absolute).relative_to(self.root)
        return relative.as_posix() if str(relative) != "." else "."

    def contains(self, absolute: Union[str, Path]) -> bool:
        """Whether an absolute path (symlinks followed) stays inside the root."""
        resolved = Path(absolute).resolve()
        return resolved == self.root or self.root in resolved.parents

    def write_text_atomic(
        self,
        path: Union[str, Path],
        content: str,
        cancelled: Optional[threading.Event] = None
    ) -> Path:
        """Write a file through a temp file and an atomic rename.

        Args:
            path: Workspace-relative target
            content: Full new file content
            cancelled: When set before the rename, the temp file is discarded
                and the target is left untouched

        Raises:
            ToolExecutionError: If the write was abandoned through ``cancelled``
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
            if cancelled is not None and cancelled.is_set():
                raise ToolExecutionError(
                    "workspace", f"Write to {self.relative(target)} abandoned after cancellation"
                )
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return target

    def _deny(self, path: str, reason: str):
        SECURITY_DENIALS.inc()
        logger.warning(
            "Security: path rejected",
            security_event=True,
            path=path,
            reason=reason,
            root=str(self.root)
        )
        raise WorkspaceSecurityError(path, details={"path": path, "reason": reason})
