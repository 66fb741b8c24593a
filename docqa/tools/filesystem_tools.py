"""
Filesystem Tools

Workspace-confined tools for browsing and editing stored documents:
list_dir, read_file, grep_files and insert_text.
"""

from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Dict, List, Optional
import asyncio
import os
import re
import shutil
import signal

import structlog

from docqa.core.exceptions import DocQAException, InputValidationError, ToolExecutionError, ToolTimeoutError
from docqa.tools.base_tool import (
    BaseTool,
    ToolContext,
    ToolKind,
    ToolMetadata,
    ToolParameter,
    ToolParameterType,
    ToolResponse,
)

logger = structlog.get_logger(__name__)

NO_MATCHES = "No matches found."
EMPTY_DIRECTORY = "(empty directory)"


def _read_text(path: Path, tool_name: str, newline: Optional[str] = None) -> str:
    if not path.exists():
        raise ToolExecutionError(tool_name, f"File not found: {path.name}")
    if not path.is_file():
        raise ToolExecutionError(tool_name, f"Not a file: {path.name}")
    try:
        with path.open("r", encoding="utf-8", errors="replace", newline=newline) as handle:
            return handle.read()
    except OSError as e:
        raise ToolExecutionError(tool_name, f"Could not read {path.name}: {e.strerror}") from e


def _dominant_newline(content: str) -> str:
    crlf = content.count("\r\n")
    if crlf and crlf >= content.count("\n") - crlf:
        return "\r\n"
    return "\n"


class ListDirTool(BaseTool):
    """List files and folders inside the workspace."""

    kind = ToolKind.LIST_DIR

    def _get_metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name=self.kind.value,
            description=(
                "List files and directories in the workspace (uploaded documents). "
                "Returns one entry per line, directories end with /. "
                "Use \".\" to list the workspace root."
            ),
            category="filesystem",
            parameters=[
                ToolParameter(
                    name="path",
                    type=ToolParameterType.STRING,
                    description="Relative path within the workspace (default \".\" for root)",
                    required=False,
                    default="."
                ),
                ToolParameter(
                    name="recursive",
                    type=ToolParameterType.BOOLEAN,
                    description="Whether to list subdirectories recursively",
                    required=False,
                    default=False
                ),
            ]
        )

    def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        target = context.workspace.resolve(params["path"])
        if not target.is_dir():
            raise ToolExecutionError(self.name, f"Not a directory: {params['path']}")

        entries: List[str] = []
        self._walk(target, "", params["recursive"], entries)
        return ToolResponse(data="\n".join(entries) if entries else EMPTY_DIRECTORY)

    def _walk(self, directory: Path, prefix: str, recursive: bool, entries: List[str]):
        for item in sorted(directory.iterdir(), key=lambda p: p.name):
            if item.name.startswith("."):
                continue
            display = f"{prefix}{item.name}"
            if item.is_dir():
                entries.append(f"{display}/")
                # Symlinked directories are listed but never descended
                if recursive and not item.is_symlink():
                    self._walk(item, f"{display}/", recursive, entries)
            else:
                entries.append(display)


class ReadFileTool(BaseTool):
    """Read a slice of a text file with line numbers."""

    kind = ToolKind.READ_FILE

    def _get_metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name=self.kind.value,
            description=(
                "Read a file from the workspace. Returns lines prefixed with their "
                "line number (L<num>:). Use offset and limit to page through large files."
            ),
            category="filesystem",
            parameters=[
                ToolParameter(
                    name="path",
                    type=ToolParameterType.STRING,
                    description="Relative path of the file within the workspace"
                ),
                ToolParameter(
                    name="offset",
                    type=ToolParameterType.INTEGER,
                    description="1-indexed line number to start reading from",
                    required=False,
                    default=1
                ),
                ToolParameter(
                    name="limit",
                    type=ToolParameterType.INTEGER,
                    description="Maximum number of lines to return (default 2000)",
                    required=False
                ),
            ]
        )

    def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        offset = params["offset"]
        limit = params["limit"] if params["limit"] is not None else context.read_limit
        if offset < 1:
            raise InputValidationError("offset must be a 1-indexed line number", details={"offset": offset})
        if limit < 1:
            raise InputValidationError("limit must be greater than zero", details={"limit": limit})

        path = context.workspace.resolve(params["path"])
        lines = _read_text(path, self.name).splitlines() or [""]

        if offset > len(lines):
            raise InputValidationError(
                "offset exceeds file length",
                details={"offset": offset, "lines": len(lines)}
            )

        max_length = context.max_line_length
        collected = [
            f"L{number}: {line[:max_length]}"
            for number, line in enumerate(lines[offset - 1:offset - 1 + limit], start=offset)
        ]
        return ToolResponse(
            data="\n".join(collected),
            metadata={"total_lines": len(lines)}
        )


class GrepFilesTool(BaseTool):
    """Find files whose contents match a regular expression."""

    kind = ToolKind.GREP_FILES

    def _get_metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name=self.kind.value,
            description=(
                "Search the workspace for files whose contents match a regex pattern. "
                "Returns matching file paths, most recently modified first."
            ),
            category="filesystem",
            parameters=[
                ToolParameter(
                    name="pattern",
                    type=ToolParameterType.STRING,
                    description="Regex pattern to search for in file contents"
                ),
                ToolParameter(
                    name="path",
                    type=ToolParameterType.STRING,
                    description="Relative path within the workspace to search (default \".\")",
                    required=False,
                    default="."
                ),
                ToolParameter(
                    name="include",
                    type=ToolParameterType.STRING,
                    description="Optional glob to filter files (e.g. \"*.txt\")",
                    required=False
                ),
                ToolParameter(
                    name="limit",
                    type=ToolParameterType.INTEGER,
                    description="Maximum number of file paths to return (default 100)",
                    required=False
                ),
            ]
        )

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        pattern = params["pattern"]
        limit = params["limit"] if params["limit"] is not None else context.grep_limit
        if not pattern or not pattern.strip():
            raise InputValidationError("pattern must not be empty")
        if limit < 1:
            raise InputValidationError("limit must be greater than zero", details={"limit": limit})
        try:
            regex = re.compile(pattern, re.MULTILINE)
        except re.error as e:
            raise InputValidationError(f"Invalid regex pattern: {e}", details={"pattern": pattern}) from e

        target = context.workspace.resolve(params["path"])
        if not target.exists():
            raise ToolExecutionError(self.name, f"Path not found: {params['path']}")

        matches = None
        if self._ripgrep_enabled(context):
            matches = await self._search_ripgrep(pattern, target, params["include"], context)
        if matches is None:
            loop = asyncio.get_running_loop()
            matches = await loop.run_in_executor(
                None, self._search_python, regex, target, params["include"], context
            )

        matches = matches[:limit]
        return ToolResponse(
            data="\n".join(matches) if matches else NO_MATCHES,
            metadata={"match_count": len(matches)}
        )

    @staticmethod
    def _ripgrep_enabled(context: ToolContext) -> bool:
        if context.use_ripgrep is None:
            return shutil.which("rg") is not None
        return context.use_ripgrep

    async def _search_ripgrep(
        self,
        pattern: str,
        target: Path,
        include: Optional[str],
        context: ToolContext
    ) -> Optional[List[str]]:
        """Search with ripgrep; None when rg cannot compile a pattern Python accepted."""
        args = ["rg", "--files-with-matches", "--sortr=modified", "--regexp", pattern, "--no-messages"]
        if include:
            args.extend(["--glob", include])
        args.extend(["--", str(target)])

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name != "nt"
            )
        except OSError as e:
            raise ToolExecutionError(
                self.name, f"Failed to launch rg: {e}. Ensure ripgrep is installed."
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=context.grep_timeout_seconds
            )
        except asyncio.TimeoutError:
            # Kill the whole process group on timeout
            if os.name != "nt":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
            await process.wait()
            raise ToolTimeoutError(self.name, context.grep_timeout_seconds)

        if process.returncode == 1:
            return []
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            if "regex parse error" in message:
                logger.info("Pattern unsupported by rg, using the Python search", pattern=pattern)
                return None
            raise ToolExecutionError(self.name, f"rg failed: {message}")

        results = []
        for line in stdout.decode("utf-8", errors="replace").splitlines():
            if not line.strip():
                continue
            found = Path(line)
            if context.workspace.contains(found):
                results.append(context.workspace.relative(found.resolve()))
        return results

    def _search_python(
        self,
        regex: "re.Pattern",
        target: Path,
        include: Optional[str],
        context: ToolContext
    ) -> List[str]:
        workspace = context.workspace
        candidates = [target] if target.is_file() else self._iter_files(target)

        matched = []
        for path in candidates:
            relative = workspace.relative(path.resolve()) if workspace.contains(path) else None
            if relative is None:
                continue
            if include and not (fnmatch(path.name, include) or fnmatch(relative, include)):
                continue
            try:
                raw = path.read_bytes()
            except OSError:
                logger.debug("Skipping unreadable file", path=relative)
                continue
            if b"\x00" in raw[:8192]:
                continue
            if regex.search(raw.decode("utf-8", errors="replace")):
                matched.append((path.stat().st_mtime, relative))

        matched.sort(key=lambda item: item[0], reverse=True)
        return [relative for _, relative in matched]

    @staticmethod
    def _iter_files(directory: Path):
        for current, dirnames, filenames in os.walk(directory):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if not filename.startswith("."):
                    yield Path(current) / filename


class InsertTextTool(BaseTool):
    """Insert text into a workspace file at a line and column."""

    kind = ToolKind.INSERT_TEXT

    def _get_metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name=self.kind.value,
            description=(
                "Insert text into a file at a specific line and column. Read the file "
                "with read_file first to find the exact line numbers."
            ),
            category="editing",
            parameters=[
                ToolParameter(
                    name="filename",
                    type=ToolParameterType.STRING,
                    description="Relative path of the file within the workspace (e.g. \"notes.tex\")"
                ),
                ToolParameter(
                    name="text",
                    type=ToolParameterType.STRING,
                    description="Text to insert"
                ),
                ToolParameter(
                    name="line",
                    type=ToolParameterType.INTEGER,
                    description="1-indexed line number; use the line count + 1 to append"
                ),
                ToolParameter(
                    name="column",
                    type=ToolParameterType.INTEGER,
                    description="1-indexed column; 1 inserts a new line before the target line",
                    required=False,
                    default=1
                ),
            ]
        )

    def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        line, column = params["line"], params["column"]
        if line < 1:
            raise InputValidationError("line must be a positive number", details={"line": line})
        if column < 1:
            raise InputValidationError("column must be a positive number", details={"column": column})

        path = context.workspace.resolve(params["filename"])
        content = _read_text(path, self.name, newline="")
        lines = content.splitlines()
        newline = _dominant_newline(content)

        if line > len(lines) + 1:
            raise InputValidationError(
                f"Line {line} is beyond the end of the file (file has {len(lines)} lines)",
                details={"line": line, "lines": len(lines)}
            )

        text = params["text"]
        index = line - 1
        if index == len(lines):
            lines.append(text)
        elif column == 1:
            lines.insert(index, text)
        else:
            current = lines[index]
            lines[index] = current[:column - 1] + text + current[column - 1:]

        updated = newline.join(lines)
        if content.endswith(("\n", "\r")):
            updated += newline
        context.workspace.write_text_atomic(
            path.relative_to(context.workspace.root), updated, cancelled=context.cancelled
        )

        relative = context.workspace.relative(path)
        logger.info("Text inserted", path=relative, line=line, column=column, length=len(text))
        return ToolResponse(
            data=f"Successfully inserted text into {relative} at line {line}, column {column}.",
            metadata={"modified_file": relative}
        )

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        response = await super().execute(params, context)

        relative = response.metadata["modified_file"]
        if context.indexer is not None:
            try:
                await context.indexer.refresh_stored_file(relative)
            except DocQAException as e:
                logger.warning("Edited file could not be reindexed", path=relative, error=e.message)
        return response
