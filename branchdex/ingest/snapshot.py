"""Branch working-tree snapshots via the git CLI."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from types import TracebackType

from branchdex.index.errors import SnapshotError
from branchdex.ingest.credentials import redact_url

logger = logging.getLogger(__name__)


class GitRunner:
    """Thin wrapper around ``git`` bound to one working directory."""

    def __init__(self, cwd: Path, *, git_bin: str = "git", timeout: float = 600.0) -> None:
        self.cwd = cwd
        self.git_bin = git_bin
        self.timeout = timeout

    def run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Run ``git <args>`` and capture output as text.

        Raises:
            SnapshotError: If git cannot be started, times out, or (with
                ``check``) exits non-zero
        """
        return self._run(args, check=check, text=True)

    def run_bytes(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[bytes]:
        """Like :meth:`run`, but stdout is left as raw bytes."""
        return self._run(args, check=check, text=False)

    def _run(
        self, args: tuple[str, ...], *, check: bool, text: bool
    ) -> subprocess.CompletedProcess:
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        decoding = {"encoding": "utf-8", "errors": "replace"} if text else {}
        try:
            result = subprocess.run(
                [self.git_bin, *args],
                capture_output=True,
                cwd=self.cwd,
                timeout=self.timeout,
                env=env,
                **decoding,
            )
        except (subprocess.SubprocessError, OSError) as exc:
            raise SnapshotError(f"git {args[0]} failed to run: {exc}") from exc

        if check and result.returncode != 0:
            stderr = result.stderr
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", errors="replace")
            detail = redact_url(stderr.strip())
            raise SnapshotError(f"git {args[0]} exited with {result.returncode}: {detail}")
        return result

    def verify(self, ref: str) -> bool:
        """True when ``ref`` resolves to a commit."""
        result = self.run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        return result.returncode == 0


class BranchSnapshotter:
    """Produces a detached checkout of one branch at a time.

    With ``repo_path`` set, branches are resolved inside that existing checkout
    and the network is never touched. Otherwise a scratch repository is created
    under ``work_dir/tmp`` and each branch is shallow-fetched into it, trying
    ``remote_urls`` in order until one succeeds.
    """

    def __init__(
        self,
        *,
        work_dir: Path,
        remote_urls: list[str] | None = None,
        repo_path: Path | None = None,
        git_timeout: float = 600.0,
        git_bin: str = "git",
    ) -> None:
        self.work_dir = work_dir
        self.remote_urls = list(remote_urls or [])
        self.repo_path = repo_path
        self.git_timeout = git_timeout
        self.git_bin = git_bin
        self._scratch: Path | None = None
        self._git: GitRunner | None = None

    def __enter__(self) -> BranchSnapshotter:
        self.prepare()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()

    @property
    def root(self) -> Path:
        """Working tree directory of the current checkout."""
        if self._git is None:
            raise SnapshotError("Snapshotter has not been prepared")
        return self._git.cwd

    @property
    def git(self) -> GitRunner:
        if self._git is None:
            raise SnapshotError("Snapshotter has not been prepared")
        return self._git

    def prepare(self) -> Path:
        """Bind to the local checkout or initialise the scratch repository."""
        if self._git is not None:
            return self._git.cwd

        if self.repo_path is not None:
            repo = self.repo_path.expanduser().resolve()
            if not repo.is_dir():
                raise SnapshotError(f"Local repository not found: {repo}")
            self._git = GitRunner(repo, git_bin=self.git_bin, timeout=self.git_timeout)
            logger.info("Using local repository %s", repo)
            return repo

        if not self.remote_urls:
            raise SnapshotError("No remote URLs configured and no local repository path set")

        tmp_root = self.work_dir / "tmp"
        tmp_root.mkdir(parents=True, exist_ok=True)
        self._scratch = Path(tempfile.mkdtemp(prefix="repo-", dir=tmp_root))
        self._git = GitRunner(self._scratch, git_bin=self.git_bin, timeout=self.git_timeout)
        self._git.run("init", "--quiet")
        self._git.run("remote", "add", "origin", self.remote_urls[-1])
        logger.debug("Initialised scratch repository %s", self._scratch)
        return self._scratch

    def resolve(self, branch: str) -> str | None:
        """Return a verifiable ref for ``branch`` or None when it cannot be obtained."""
        git = self.git
        if self.repo_path is not None:
            for candidate in (branch, f"refs/heads/{branch}", f"refs/remotes/origin/{branch}"):
                if git.verify(candidate):
                    logger.debug("Resolved %s to local ref %s", branch, candidate)
                    return candidate
            logger.warning("Branch %s not found in local repository %s", branch, git.cwd)
            return None

        target = f"refs/remotes/origin/{branch}"
        for url in self.remote_urls:
            try:
                git.run("remote", "set-url", "origin", url)
                git.run(
                    "fetch",
                    "--depth",
                    "1",
                    "--no-tags",
                    "--progress",
                    "origin",
                    f"+refs/heads/{branch}:{target}",
                )
            except SnapshotError as exc:
                logger.warning("Fetch of %s from %s failed: %s", branch, redact_url(url), exc)
                continue
            if git.verify(target):
                return target

        logger.warning("Branch %s could not be fetched from any remote", branch)
        return None

    def checkout(self, ref: str) -> Path:
        """Detached, forced checkout of ``ref``; returns the working tree."""
        self.git.run("checkout", "--quiet", "--force", "--detach", ref)
        return self.root

    def head_commit(self) -> str | None:
        result = self.git.run("rev-parse", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def tracked_files(self) -> list[str]:
        """Version-controlled paths of the current checkout.

        Paths are decoded with :func:`os.fsdecode`, so names that are not
        valid UTF-8 still round-trip to the file on disk.
        """
        result = self.git.run_bytes("ls-files", "-z")
        return [os.fsdecode(path) for path in result.stdout.split(b"\0") if path]

    def cleanup(self) -> None:
        """Remove the scratch repository, if one was created."""
        if self._scratch is not None:
            shutil.rmtree(self._scratch, ignore_errors=True)
            self._scratch = None
        self._git = None
