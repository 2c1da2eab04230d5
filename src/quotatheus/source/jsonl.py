import asyncio
from pathlib import Path
from typing import Sequence

import structlog

logger = structlog.get_logger()


def discover_data_paths(
    config_dir: "str" = "",
    home: "Path | None" = None,
) -> "list[Path]":
    """
    returns the existing projects/ directories holding conversation
    logs. An explicit config_dir is checked first, followed by the
    standard locations under the home directory.
    """
    home = home or Path.home()
    candidates: "list[Path]" = []
    if config_dir:
        candidates.append(Path(config_dir).expanduser() / "projects")

    candidates.append(home / ".config" / "claude" / "projects")
    candidates.append(home / ".claude" / "projects")

    paths: "list[Path]" = []
    for candidate in candidates:
        if candidate.is_dir() and candidate not in paths:
            paths.append(candidate)

    logger.debug("data_paths_discovered", paths=[str(p) for p in paths])
    return paths


class JsonlDirectorySource:
    """
    JsonlDirectorySource implements the LogSource protocol for the
    on-disk layout <root>/<project>/<session>.jsonl. Every cycle it
    re-reads all files; the same message can show up in several of
    them and is collapsed later by the engine.
    """

    def __init__(self, roots: "Sequence[Path]") -> "None":
        self._roots: "list[Path]" = list(roots)

    @property
    def name(self) -> "str":
        return "jsonl"

    async def close(self) -> "None":
        """
        nothing to release, files are opened per read.
        """

    async def read_lines(self) -> "list[str]":
        """
        reads every log file in a worker thread so the event loop
        stays responsive.
        """
        return await asyncio.to_thread(self._read_all)

    def _log_files(self) -> "list[Path]":
        files: "list[Path]" = []
        for root in self._roots:
            try:
                project_dirs = sorted(p for p in root.iterdir() if p.is_dir())
            except OSError as e:
                logger.warning("data_path_unreadable", path=str(root), error=str(e))
                continue

            for project_dir in project_dirs:
                files.extend(sorted(project_dir.glob("*.jsonl")))

        return files

    def _read_all(self) -> "list[str]":
        lines: "list[str]" = []
        files = self._log_files()

        for path in files:
            try:
                with path.open("r", encoding="utf-8", errors="replace") as f:
                    lines.extend(f.read().splitlines())
            except OSError as e:
                # a file can vanish or be locked between listing and reading
                logger.warning("log_file_unreadable", path=str(path), error=str(e))
                continue

        logger.debug("log_files_read", file_count=len(files), line_count=len(lines))
        return lines
