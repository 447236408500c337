"""Thin wrapper around the ``git`` command line."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from .errors import GitError

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 60


class GitRepository:
    """Run git commands inside ``cwd``; any failure becomes :class:`GitError`."""

    def __init__(self, cwd: Optional[Path] = None, remote: str = "origin") -> None:
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.remote = remote

    def _run(self, *args: str) -> str:
        logger.debug(f"git {' '.join(args)}")
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip()
            raise GitError(f"git {args[0]} failed: {detail}") from exc
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise GitError(f"git {args[0]} failed: {exc}") from exc
        return result.stdout

    def list_tags(self, pattern: str) -> List[str]:
        return [t for t in self._run("tag", "-l", pattern).splitlines() if t.strip()]

    def create_annotated_tag(self, tag: str, message: str) -> None:
        self._run("tag", "-a", tag, "-m", message)

    def push_ref(self, ref: str, set_upstream: bool = False) -> None:
        args = ["push"]
        if set_upstream:
            args.append("-u")
        self._run(*args, self.remote, ref)

    def create_branch(self, branch: str) -> None:
        self._run("checkout", "-b", branch)

    def diff_file_names(self, before: str, after: str) -> List[str]:
        output = self._run("diff", "--name-only", before, after)
        return [line for line in output.splitlines() if line.strip()]

    def show_file(self, ref: str, path: str) -> Optional[str]:
        """Content of ``path`` at ``ref``, or ``None`` when it does not exist there."""
        try:
            return self._run("show", f"{ref}:{path}")
        except GitError:
            logger.debug(f"{path} not present at {ref}")
            return None

    def ensure_identity(self, name: str, email: str) -> None:
        for key, value in (("user.name", name), ("user.email", email)):
            try:
                self._run("config", key)
            except GitError:
                self._run("config", key, value)

    def add(self, *paths: str) -> None:
        self._run("add", *paths)

    def commit(self, message: str) -> None:
        self._run("commit", "-m", message)
