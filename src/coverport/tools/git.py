"""Repository checkout via the ``git`` CLI."""

from __future__ import annotations

from pathlib import Path

import structlog

from coverport.core.errors import ToolError
from coverport.tools.runner import require_tool, run_tool

log = structlog.get_logger(__name__)


class RepositoryCloner:
    """Clones a repository and pins it to one commit."""

    def __init__(self, git: str | None = None, *, timeout: float = 600.0) -> None:
        self._git = git
        self._timeout = timeout

    @property
    def git(self) -> str:
        if self._git is None:
            self._git = require_tool("git", "cloning source repositories")
        return self._git

    def clone(
        self,
        repo_url: str,
        target_dir: Path,
        *,
        commit_sha: str | None = None,
        branch: str | None = None,
        depth: int = 1,
    ) -> Path:
        """Clone ``repo_url`` into ``target_dir`` at ``commit_sha``.

        Shallow clones fetch the commit explicitly, retrying without a
        depth limit if the server refuses a shallow fetch.

        Raises:
            ToolError: Clone failed or the commit is unreachable.
        """
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        args: list[str] = [self.git, "clone"]
        if depth > 0:
            args += ["--depth", str(depth)]
        if branch:
            args += ["--branch", branch]
        args += [repo_url, str(target_dir)]
        log.info("git.clone", repo=repo_url, branch=branch, depth=depth, target=str(target_dir))
        run_tool(args, timeout=self._timeout)

        if commit_sha:
            if depth > 0:
                try:
                    run_tool(
                        [self.git, "-C", target_dir, "fetch", "--depth=1", "origin", commit_sha],
                        timeout=self._timeout,
                    )
                except ToolError:
                    log.debug("git.fetch_retry_unshallow", commit=commit_sha)
                    run_tool(
                        [self.git, "-C", target_dir, "fetch", "origin", commit_sha],
                        timeout=self._timeout,
                    )
            run_tool([self.git, "-C", target_dir, "checkout", commit_sha], timeout=self._timeout)

        head = run_tool([self.git, "-C", target_dir, "log", "-1", "--oneline"], check=False)
        log.info("git.checked_out", target=str(target_dir), head=head.stdout.strip())
        return target_dir
