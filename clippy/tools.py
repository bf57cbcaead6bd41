from __future__ import annotations

import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from clippy.models import ToolDefinition

logger = logging.getLogger(__name__)

BINARY_CHECK_BYTES = 8192


class ToolError(RuntimeError):
    """Raised when a tool rejects its arguments or the OS rejects the action."""


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------

class _Args(BaseModel):
    # strict: a number is never coerced into a path, nor a string into a line number
    model_config = ConfigDict(strict=True)


class PathArgs(_Args):
    path: str


class WriteArgs(_Args):
    path: str
    content: str


class EditArgs(_Args):
    path: str
    target: str
    replacement: str


class SearchArgs(_Args):
    path: str
    pattern: str


class MoveArgs(_Args):
    source: str
    destination: str


class LineRangeArgs(_Args):
    path: str
    start_line: float
    end_line: float


class NoArgs(_Args):
    pass


class CommandArgs(_Args):
    command: str


def _string_param(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


# ---------------------------------------------------------------------------
# Tool base
# ---------------------------------------------------------------------------

class Tool(ABC):
    name: ClassVar[str]
    description: ClassVar[str]
    parameters: ClassVar[dict[str, Any]]
    args_model: ClassVar[type[_Args]]

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def execute(self, arguments: dict[str, Any]) -> str:
        """Validate ``arguments`` into the tool's argument model, then run it."""
        return self.run(self.parse(arguments))

    def parse(self, arguments: dict[str, Any]) -> Any:
        try:
            return self.args_model.model_validate(arguments or {})
        except ValidationError as e:
            err = e.errors()[0]
            field = err["loc"][0] if err["loc"] else "arguments"
            raise ToolError(f"missing or invalid '{field}' argument") from None

    @abstractmethod
    def run(self, args: Any) -> str:
        ...


# ---------------------------------------------------------------------------
# File tools
# ---------------------------------------------------------------------------

class ReadFileTool(Tool):
    name = "read_file"
    description = "Read the contents of a file"
    parameters = {
        "type": "object",
        "properties": {"path": _string_param("The path to the file to read")},
        "required": ["path"],
    }
    args_model = PathArgs

    def run(self, args: PathArgs) -> str:
        try:
            with open(args.path, encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ToolError(f"failed to read file: {e}") from e


class WriteFileTool(Tool):
    name = "write_file"
    description = "Write content to a file (overwrites existing content)"
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("The path to the file to write"),
            "content": _string_param("The content to write to the file"),
        },
        "required": ["path", "content"],
    }
    args_model = WriteArgs

    def run(self, args: WriteArgs) -> str:
        try:
            # newline="" keeps the bytes exactly as given
            with open(args.path, "w", encoding="utf-8", newline="") as f:
                f.write(args.content)
        except OSError as e:
            raise ToolError(f"failed to write file: {e}") from e
        return f"Successfully wrote to {args.path}"


class EditFileTool(Tool):
    name = "edit_file"
    description = "Edit a file by replacing a specific target string with a replacement string"
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("The path to the file to edit"),
            "target": _string_param("The exact string to replace"),
            "replacement": _string_param("The new string to replace the target with"),
        },
        "required": ["path", "target", "replacement"],
    }
    args_model = EditArgs

    def run(self, args: EditArgs) -> str:
        try:
            with open(args.path, encoding="utf-8", newline="") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ToolError(f"failed to read file: {e}") from e

        if args.target not in text:
            raise ToolError("target string not found in file")

        new_text = text.replace(args.target, args.replacement, 1)
        try:
            with open(args.path, "w", encoding="utf-8", newline="") as f:
                f.write(new_text)
        except OSError as e:
            raise ToolError(f"failed to write file: {e}") from e
        return f"Successfully edited {args.path}"


class ListDirectoryTool(Tool):
    name = "list_directory"
    description = "List all files and subdirectories in a directory"
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("The directory path to list (use '.' for current directory)"),
        },
        "required": ["path"],
    }
    args_model = PathArgs

    def run(self, args: PathArgs) -> str:
        try:
            entries = sorted(os.scandir(args.path), key=lambda e: e.name)
        except OSError as e:
            raise ToolError(f"failed to read directory: {e}") from e

        lines = [f"Contents of {args.path}:"]
        for entry in entries:
            if entry.is_dir():
                lines.append(f"  [DIR]  {entry.name}")
            else:
                try:
                    size = entry.stat().st_size
                except OSError:
                    size = 0
                lines.append(f"  [FILE] {entry.name} ({size} bytes)")
        return "\n".join(lines) + "\n"


class SearchFilesTool(Tool):
    name = "search_files"
    description = "Search for a text pattern in files within a directory (recursive)"
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("The directory to search in"),
            "pattern": _string_param("The text pattern to search for"),
        },
        "required": ["path", "pattern"],
    }
    args_model = SearchArgs

    def run(self, args: SearchArgs) -> str:
        root = Path(args.path)
        if not root.exists():
            raise ToolError(f"failed to search: path does not exist: {args.path}")

        try:
            regex = re.compile(args.pattern)
        except re.error:
            regex = re.compile(re.escape(args.pattern))

        files = [root] if root.is_file() else _walk_files(root)
        matches: list[str] = []
        for filepath in files:
            text = _read_text_file(filepath)
            if text is None:
                continue
            for line_no, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    matches.append(f"{filepath}:{line_no}:{line}")

        if not matches:
            return "No matches found"
        return "\n".join(matches) + "\n"


def _walk_files(root: Path) -> list[Path]:
    found: list[Path] = []
    for dirpath, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d != ".git")
        for filename in sorted(files):
            found.append(Path(dirpath) / filename)
    return found


def _read_text_file(filepath: Path) -> str | None:
    """Return file text, or None for binary / unreadable files."""
    try:
        with open(filepath, "rb") as f:
            chunk = f.read(BINARY_CHECK_BYTES)
        if b"\x00" in chunk:
            return None
        return filepath.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError):
        return None


class CreateDirectoryTool(Tool):
    name = "create_directory"
    description = "Create a new directory (including parent directories if needed)"
    parameters = {
        "type": "object",
        "properties": {"path": _string_param("The directory path to create")},
        "required": ["path"],
    }
    args_model = PathArgs

    def run(self, args: PathArgs) -> str:
        try:
            Path(args.path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ToolError(f"failed to create directory: {e}") from e
        return f"Successfully created directory {args.path}"


class DeleteFileTool(Tool):
    name = "delete_file"
    description = "Delete a file"
    parameters = {
        "type": "object",
        "properties": {"path": _string_param("The file path to delete")},
        "required": ["path"],
    }
    args_model = PathArgs

    def run(self, args: PathArgs) -> str:
        try:
            os.remove(args.path)
        except OSError as e:
            raise ToolError(f"failed to delete file: {e}") from e
        return f"Successfully deleted {args.path}"


class MoveFileTool(Tool):
    name = "move_file"
    description = "Move or rename a file"
    parameters = {
        "type": "object",
        "properties": {
            "source": _string_param("The source file path"),
            "destination": _string_param("The destination file path"),
        },
        "required": ["source", "destination"],
    }
    args_model = MoveArgs

    def run(self, args: MoveArgs) -> str:
        try:
            os.rename(args.source, args.destination)
        except OSError as e:
            raise ToolError(f"failed to move file: {e}") from e
        return f"Successfully moved {args.source} to {args.destination}"


class AppendToFileTool(Tool):
    name = "append_to_file"
    description = "Append content to the end of a file"
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("The file path to append to"),
            "content": _string_param("The content to append"),
        },
        "required": ["path", "content"],
    }
    args_model = WriteArgs

    def run(self, args: WriteArgs) -> str:
        try:
            with open(args.path, "a", encoding="utf-8", newline="") as f:
                f.write(args.content)
        except OSError as e:
            raise ToolError(f"failed to append to file: {e}") from e
        return f"Successfully appended to {args.path}"


class ReadFileLinesTool(Tool):
    name = "read_file_lines"
    description = "Read specific line ranges from a file"
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("The file path to read"),
            "start_line": {"type": "number", "description": "Starting line number (1-indexed)"},
            "end_line": {"type": "number", "description": "Ending line number (1-indexed)"},
        },
        "required": ["path", "start_line", "end_line"],
    }
    args_model = LineRangeArgs

    def run(self, args: LineRangeArgs) -> str:
        start, end = int(args.start_line), int(args.end_line)
        try:
            lines = Path(args.path).read_text(encoding="utf-8").split("\n")
        except (OSError, UnicodeDecodeError) as e:
            raise ToolError(f"failed to read file: {e}") from e

        if start < 1 or start > len(lines):
            raise ToolError("start_line out of range")
        if end < start or end > len(lines):
            raise ToolError("end_line out of range")
        return "\n".join(lines[start - 1:end])


class GetCurrentDirectoryTool(Tool):
    name = "get_current_directory"
    description = "Get the current working directory"
    parameters = {"type": "object", "properties": {}, "required": []}
    args_model = NoArgs

    def run(self, args: NoArgs) -> str:
        try:
            return os.getcwd()
        except OSError as e:
            raise ToolError(f"failed to get current directory: {e}") from e


# ---------------------------------------------------------------------------
# Process tool
# ---------------------------------------------------------------------------

class RunCommandTool(Tool):
    name = "run_command"
    description = "Execute a shell command"
    parameters = {
        "type": "object",
        "properties": {"command": _string_param("The command to execute")},
        "required": ["command"],
    }
    args_model = CommandArgs

    def run(self, args: CommandArgs) -> str:
        logger.debug("run_command: %s", args.command)
        try:
            proc = subprocess.run(
                ["sh", "-c", args.command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            return f"Command failed: {e}\nOutput:\n"
        if proc.returncode != 0:
            # the model needs to see the failure, so this is still a result
            return f"Command failed: exit status {proc.returncode}\nOutput:\n{proc.stdout}"
        return proc.stdout


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

TOOL_CLASSES: list[type[Tool]] = [
    ReadFileTool,
    WriteFileTool,
    EditFileTool,
    ListDirectoryTool,
    SearchFilesTool,
    CreateDirectoryTool,
    DeleteFileTool,
    MoveFileTool,
    AppendToFileTool,
    ReadFileLinesTool,
    GetCurrentDirectoryTool,
    RunCommandTool,
]


def default_tools() -> tuple[Tool, ...]:
    return tuple(cls() for cls in TOOL_CLASSES)


def describe_tool_call(name: str, args: dict[str, Any]) -> str:
    """Human-readable one-liner for a pending tool call."""
    path = args.get("path")
    if name == "read_file" and isinstance(path, str):
        return f"📖 Reading file: {path}"
    if name == "write_file" and isinstance(path, str):
        return f"✍️  Writing file: {path}"
    if name == "edit_file" and isinstance(path, str):
        return f"✏️  Editing file: {path}"
    if name == "list_directory" and isinstance(path, str):
        return f"📁 Listing directory: {path}"
    if name == "search_files" and isinstance(path, str):
        pattern = args.get("pattern")
        if isinstance(pattern, str):
            return f"🔍 Searching in {path} for: {pattern}"
        return f"🔍 Searching in: {path}"
    if name == "create_directory" and isinstance(path, str):
        return f"📂 Creating directory: {path}"
    if name == "delete_file" and isinstance(path, str):
        return f"🗑️  Deleting file: {path}"
    if name == "move_file" and isinstance(args.get("source"), str):
        dest = args.get("destination")
        if isinstance(dest, str):
            return f"📦 Moving {args['source']} → {dest}"
        return f"📦 Moving: {args['source']}"
    if name == "append_to_file" and isinstance(path, str):
        return f"➕ Appending to: {path}"
    if name == "read_file_lines" and isinstance(path, str):
        return f"📖 Reading lines from: {path}"
    if name == "run_command" and isinstance(args.get("command"), str):
        return f"⚡ Running: {args['command']}"
    if name == "get_current_directory":
        return "📍 Getting current directory"
    return f"🔧 Executing: {name}"
