"""Coverage upload via the Codecov CLI."""

from __future__ import annotations

import os
import platform
import shutil
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from coverport.core.errors import ConfigurationError, ToolError
from coverport.tools.runner import run_tool

log = structlog.get_logger(__name__)

_CLI_URLS = {
    "Linux": "https://cli.codecov.io/latest/linux/codecov",
    "Darwin": "https://cli.codecov.io/latest/macos/codecov",
}


def repo_slug(git_url: str) -> str | None:
    """``owner/repo`` from https, ssh or scp-style git URLs."""
    url = git_url.strip().removesuffix("/").removesuffix(".git")
    for prefix in ("https://", "http://", "ssh://", "git@"):
        url = url.removeprefix(prefix)
    url = url.replace(":", "/", 1)
    parts = [p for p in url.split("/") if p]
    if len(parts) >= 2:
        return f"{parts[-2]}/{parts[-1]}"
    return None


def git_service(git_url: str) -> str:
    """Codecov git-service name for a repository URL; defaults to github."""
    url = git_url.lower()
    if "github.com" in url:
        return "github"
    if "gitlab.com" in url:
        return "gitlab"
    if "bitbucket.org" in url:
        return "bitbucket"
    if "github" in url:
        return "github_enterprise"
    if "gitlab" in url:
        return "gitlab_enterprise"
    if "bitbucket" in url:
        return "bitbucket_server"
    return "github"


@dataclass(frozen=True, slots=True)
class UploadRequest:
    coverage_file: Path
    commit_sha: str
    repo_root: Path
    repo_url: str | None = None
    branch: str | None = None
    flags: tuple[str, ...] = ()
    name: str | None = None

    def args(self, token: str) -> list[str]:
        args = [
            "upload-coverage",
            "-t",
            token,
            "-f",
            str(self.coverage_file.resolve()),
            "--sha",
            self.commit_sha,
            "--disable-search",
        ]
        if self.repo_url:
            if slug := repo_slug(self.repo_url):
                args += ["--slug", slug]
            args += ["--git-service", git_service(self.repo_url)]
        if self.branch:
            args += ["--branch", self.branch]
        for flag in self.flags:
            args += ["--flag", flag]
        if self.name:
            args += ["--name", self.name]
        return args


class CodecovUploader:
    """Runs ``codecov upload-coverage``; downloads the CLI when it is missing."""

    def __init__(
        self,
        token: str,
        *,
        codecov: str | None = None,
        timeout: float = 600.0,
        http: httpx.Client | None = None,
    ) -> None:
        if not token:
            raise ConfigurationError.missing_required("codecov token")
        self._token = token
        self._codecov = codecov or shutil.which("codecov")
        self._timeout = timeout
        self._http = http
        self._downloaded: Path | None = None

    def _ensure_cli(self) -> str:
        if self._codecov:
            return self._codecov
        url = _CLI_URLS.get(platform.system())
        if url is None:
            raise ToolError.not_found("codecov", f"uploading coverage on {platform.system()}")
        log.info("codecov.download_cli", url=url)
        client = self._http or httpx.Client(follow_redirects=True, timeout=120.0)
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            raise ToolError.not_found("codecov", f"download failed: {e}") from e
        finally:
            if self._http is None:
                client.close()
        if response.status_code != 200:
            raise ToolError.not_found("codecov", f"download returned HTTP {response.status_code}")

        fd, name = tempfile.mkstemp(prefix="codecov-")
        with os.fdopen(fd, "wb") as f:
            f.write(response.content)
        path = Path(name)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        self._downloaded = path
        self._codecov = str(path)
        return self._codecov

    def upload(self, request: UploadRequest) -> None:
        """Upload one report; the CLI's exit code decides success.

        Raises:
            ToolError: Report missing or the upload exited non-zero.
        """
        if not request.coverage_file.is_file():
            raise ToolError.failed(
                "codecov", 1, f"coverage file not found: {request.coverage_file}"
            )
        cli = self._ensure_cli()
        log.info(
            "codecov.upload",
            file=str(request.coverage_file),
            commit=request.commit_sha,
            branch=request.branch,
            flags=list(request.flags),
        )
        run_tool([cli, *request.args(self._token)], cwd=request.repo_root, timeout=self._timeout)

    def close(self) -> None:
        if self._downloaded is not None:
            self._downloaded.unlink(missing_ok=True)
            self._downloaded = None
