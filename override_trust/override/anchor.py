"""
Repository anchor resolution.

The anchor is the SHA of the repository's root commit. It is load-bearing:
an override without one is meaningless, so failures propagate.
"""

import logging
from typing import Optional

from ..core.config import GitConfig
from ..core.exceptions import CommandError, RootAnchorError
from ..external import RunCmd, run_cmd as default_run_cmd

logger = logging.getLogger(__name__)


class GitRepository:
    """Version-control queries against a working tree."""

    def __init__(
        self,
        path: str = "git",
        repo_dir: str = ".",
        run_cmd: RunCmd = default_run_cmd,
        timeout: Optional[float] = None,
    ):
        self.path = path
        self.repo_dir = repo_dir
        self.timeout = timeout
        self._run_cmd = run_cmd

    @classmethod
    def from_config(
        cls,
        config: GitConfig,
        repo_dir: str,
        run_cmd: RunCmd = default_run_cmd,
    ) -> "GitRepository":
        return cls(
            path=config.path,
            repo_dir=repo_dir,
            run_cmd=run_cmd,
            timeout=config.timeout_seconds,
        )

    async def root_sha(self) -> str:
        """
        SHA of the first commit in the current history.

        Raises:
            RootAnchorError: git failed or returned nothing.
        """
        try:
            result = await self._run_cmd(
                [self.path, "rev-list", "--max-parents=0", "HEAD"],
                timeout=self.timeout,
                cwd=self.repo_dir,
            )
        except CommandError as e:
            raise RootAnchorError(
                f"Unable to resolve root commit: {e.message}",
                repo_dir=self.repo_dir,
            ) from e

        lines = result.stdout.strip().splitlines()
        if not lines:
            raise RootAnchorError(
                "Repository has no commits",
                repo_dir=self.repo_dir,
            )

        # rev-list lists newest first; with several roots the last is oldest
        return lines[-1].strip()


class RootAnchorResolver:
    """Resolves the anchor once per process run."""

    def __init__(self, repo: GitRepository):
        self.repo = repo
        self._root_sha: Optional[str] = None

    async def root_sha(self) -> str:
        if self._root_sha is None:
            self._root_sha = await self.repo.root_sha()
            logger.debug(f"Repository anchor for {self.repo.repo_dir}: {self._root_sha}")
        return self._root_sha
