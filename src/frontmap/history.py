"""Commit history for entity files, read from git via subprocess."""

import re
import subprocess
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .logging_config import get_logger
from .models import BaseEntity

logger = get_logger(__name__)


@dataclass
class Commit:
    hash: str
    timestamp: int  # unix seconds
    author: str
    subject: str = ""
    files: list[str] = field(default_factory=list)  # repo-relative paths changed

    def to_record(self) -> dict:
        """Labeler-facing form: no file list."""
        record = asdict(self)
        del record["files"]
        return record


class GitHistorySource:
    """Reads ``git log`` once and answers per-file and per-entity history."""

    # Matches: 40-char hex hash | unix timestamp | author email | subject
    # Subject can contain | characters, so parsing uses maxsplit=3
    _HEADER_RE = re.compile(r"^[0-9a-f]{40}\|\d+\|[^|]*\|.*$")

    # Maximum git log output size (50MB)
    _MAX_OUTPUT_BYTES = 50 * 1024 * 1024

    def __init__(self, repo_path: Path | str, max_commits: int = 500):
        self.repo_path = Path(repo_path).resolve()
        self.max_commits = max_commits
        self._commits: Optional[list[Commit]] = None
        self._prefix: Optional[str] = None

    def commits(self) -> list[Commit]:
        """All commits, newest first. Empty when not a git repository."""
        if self._commits is None:
            self._commits = self._load()
        return self._commits

    def _load(self) -> list[Commit]:
        if self.max_commits <= 0:
            return []
        if not self._is_git_repo():
            logger.info("Not a git repository, skipping commit history")
            return []
        raw = self._run_git_log()
        if raw is None:
            return []
        commits = self._parse_log(raw)
        logger.debug(f"Read {len(commits)} commits from {self.repo_path}")
        return commits

    def _is_git_repo(self) -> bool:
        try:
            result = subprocess.run(
                ["git", "-C", str(self.repo_path), "rev-parse", "--show-prefix"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False
        if result.returncode != 0:
            return False
        # git reports paths relative to the repository top level
        self._prefix = result.stdout.strip()
        return True

    def _run_git_log(self) -> Optional[str]:
        cmd = [
            "git",
            "-C",
            str(self.repo_path),
            "log",
            "--format=%H|%at|%ae|%s",
            "--name-only",
            f"-n{self.max_commits}",
        ]
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except FileNotFoundError as e:
            logger.warning(f"git log error: {e}")
            return None

        try:
            chunks = []
            total_size = 0
            stdout = proc.stdout
            if stdout is None:
                return None
            while True:
                chunk = stdout.read(1024 * 1024)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > self._MAX_OUTPUT_BYTES:
                    logger.warning(
                        f"git log output exceeded {self._MAX_OUTPUT_BYTES // (1024 * 1024)}MB, truncating"
                    )
                    proc.kill()
                    break
                chunks.append(chunk)

            proc.wait(timeout=30)
            if proc.returncode not in (0, -9):  # -9 = killed
                stderr = proc.stderr.read() if proc.stderr else ""
                logger.warning(f"git log failed: {stderr.strip()}")
                return None
            return "".join(chunks)
        except subprocess.TimeoutExpired as e:
            logger.warning(f"git log error: {e}")
            proc.kill()
            return None
        finally:
            if proc.stdout:
                proc.stdout.close()
            if proc.stderr:
                proc.stderr.close()

    def _parse_log(self, raw: str) -> list[Commit]:
        """Parse ``git log`` output into commits.

        Header lines are detected by regex, so merge commits without files
        and consecutive headers are handled.
        """
        commits: list[Commit] = []
        current: Optional[Commit] = None

        for line in raw.split("\n"):
            line = line.strip()
            if not line:
                continue
            if self._HEADER_RE.match(line):
                if current is not None:
                    commits.append(current)
                parts = line.split("|", 3)
                current = Commit(
                    hash=parts[0],
                    timestamp=int(parts[1]),
                    author=parts[2],
                    subject=parts[3] if len(parts) > 3 else "",
                )
            elif current is not None:
                current.files.append(self._project_relative(line))

        if current is not None:
            commits.append(current)
        return commits

    def _project_relative(self, repo_path: str) -> str:
        prefix = self._prefix or ""
        if prefix and repo_path.startswith(prefix):
            return repo_path[len(prefix):]
        return repo_path

    def for_file(self, relative_path: str) -> list[Commit]:
        return [commit for commit in self.commits() if relative_path in commit.files]

    def for_entities(self, entities: Iterable[BaseEntity]) -> dict[str, list[dict]]:
        """
        Commit records per entity ID, newest first.

        History is tracked per file, so entities sharing a file share commits.
        """
        by_file: dict[str, list[dict]] = {}
        for commit in self.commits():
            record = commit.to_record()
            for path in commit.files:
                by_file.setdefault(path, []).append(record)
        return {entity.id: list(by_file.get(entity.file, [])) for entity in entities}
