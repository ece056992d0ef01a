"""Git mirror operations with automatic backend selection.

Uses the native git binary when available and falls back to dulwich
(pure Python) otherwise.

Usage:
    from backhub.git_utils import git

    git.clone_mirror("https://github.com/org/repo", Path("repo.git"), token)
    changed = git.fetch_mirror(Path("repo.git"), "https://github.com/org/repo", token)
"""

from __future__ import annotations

import base64
import io
import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

# Username sent with the token for HTTP basic auth. GitHub ignores it.
AUTH_USERNAME = "backhub"


class GitOperationError(RuntimeError):
    """A clone or fetch failed."""


def build_repo_url(repo: str) -> str:
    """HTTPS URL for a ``host/owner/name`` identifier."""
    return f"https://{repo}"


def local_folder_name(repo: str) -> str:
    """Mirror directory name for a repository, e.g. ``backhub.git``."""
    return PurePosixPath(repo.rstrip("/")).name + ".git"


class GitBackend(ABC):
    """Abstract base class for mirror operations."""

    name: str = "abstract"

    def is_repo(self, path: Path) -> bool:
        """Check if path holds a bare (mirror) or regular repository."""
        if (path / ".git").is_dir():
            return True
        return (path / "HEAD").is_file() and (path / "objects").is_dir()

    @abstractmethod
    def clone_mirror(self, url: str, dest: Path, token: str = "") -> None:
        """Create a mirror of ``url`` at ``dest``."""
        ...

    @abstractmethod
    def fetch_mirror(self, path: Path, url: str, token: str = "") -> bool:
        """Refresh an existing mirror.

        Returns:
            True if any ref changed, False if already up to date
        """
        ...


def _auth_header_env(token: str) -> dict[str, str]:
    """Git config environment entries carrying the token as an auth header.

    The header goes through ``GIT_CONFIG_KEY_<n>``/``GIT_CONFIG_VALUE_<n>``
    so it never shows up on the command line or in the mirror config.
    Existing ``GIT_CONFIG_*`` entries in the environment are kept.
    """
    credentials = base64.b64encode(f"{AUTH_USERNAME}:{token}".encode()).decode()
    try:
        index = int(os.environ.get("GIT_CONFIG_COUNT", "0"))
    except ValueError:
        index = 0
    return {
        "GIT_CONFIG_COUNT": str(index + 1),
        f"GIT_CONFIG_KEY_{index}": "http.extraHeader",
        f"GIT_CONFIG_VALUE_{index}": f"Authorization: Basic {credentials}",
    }


class NativeGitBackend(GitBackend):
    """Git backend using native git binary via subprocess."""

    name = "native"

    def _run(
        self,
        args: list[str],
        cwd: Path | None = None,
        token: str = "",
    ) -> subprocess.CompletedProcess:
        """Run a git command, raising GitOperationError on failure."""
        cmd = ["git", *args]
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        if token:
            env.update(_auth_header_env(token))

        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            env=env,
        )
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            detail = detail or f"exit {result.returncode}"
            raise GitOperationError(f"git {args[0]} failed: {detail}")
        return result

    def clone_mirror(self, url: str, dest: Path, token: str = "") -> None:
        self._run(["clone", "--mirror", url, str(dest)], token=token)

    def fetch_mirror(self, path: Path, url: str, token: str = "") -> bool:
        self._run(["remote", "set-url", "origin", url], cwd=path)
        result = self._run(
            ["fetch", "--prune", "--tags", "--force", "origin"], cwd=path, token=token
        )
        # git fetch prints nothing when no ref changed
        return bool((result.stdout + result.stderr).strip())


class DulwichBackend(GitBackend):
    """Git backend using dulwich (pure Python)."""

    name = "dulwich"

    def _auth(self, token: str) -> dict:
        if not token:
            return {}
        return {"username": AUTH_USERNAME, "password": token}

    def _fetch_refs(self, repo, url: str, token: str) -> bool:
        """Fetch every remote ref into the same local ref name, mirror style."""
        from dulwich import porcelain

        try:
            result = porcelain.fetch(repo, url, errstream=io.BytesIO(), **self._auth(token))
        except Exception as e:
            raise GitOperationError(f"fetch failed: {e}") from e

        remote_refs = {
            ref: sha
            for ref, sha in result.refs.items()
            if sha is not None and ref.startswith(b"refs/") and not ref.endswith(b"^{}")
        }
        local_refs = repo.refs.as_dict()
        changed = False
        for ref, sha in remote_refs.items():
            if local_refs.get(ref) != sha:
                repo.refs[ref] = sha
                changed = True

        # Prune branches and tags deleted upstream
        for ref in local_refs:
            if ref.startswith((b"refs/heads/", b"refs/tags/")) and ref not in remote_refs:
                del repo.refs[ref]
                changed = True

        head_target = (getattr(result, "symrefs", None) or {}).get(b"HEAD")
        if head_target:
            repo.refs.set_symbolic_ref(b"HEAD", head_target)
        return changed

    def clone_mirror(self, url: str, dest: Path, token: str = "") -> None:
        from dulwich.repo import Repo

        dest.mkdir(parents=True, exist_ok=True)
        repo = Repo.init_bare(str(dest))
        try:
            config = repo.get_config()
            config.set((b"remote", b"origin"), b"url", url.encode())
            config.set((b"remote", b"origin"), b"fetch", b"+refs/*:refs/*")
            config.set((b"remote", b"origin"), b"mirror", True)
            config.write_to_path()
            self._fetch_refs(repo, url, token)
        except Exception:
            # Remove the partial mirror so the next run clones again
            repo.close()
            shutil.rmtree(dest, ignore_errors=True)
            raise
        repo.close()

    def fetch_mirror(self, path: Path, url: str, token: str = "") -> bool:
        from dulwich.repo import Repo

        try:
            repo = Repo(str(path))
        except Exception as e:
            raise GitOperationError(f"failed to open repository: {e}") from e
        with repo:
            config = repo.get_config()
            config.set((b"remote", b"origin"), b"url", url.encode())
            config.write_to_path()
            return self._fetch_refs(repo, url, token)


def _detect_backend() -> GitBackend:
    """Detect which git backend to use.

    Prefers native git if available, falls back to dulwich.
    """
    if shutil.which("git"):
        logger.debug("Using native git backend")
        return NativeGitBackend()
    else:
        logger.debug("Native git not found, using dulwich backend")
        return DulwichBackend()


# Module-level git instance - auto-detected at import
git = _detect_backend()


def get_backend_name() -> str:
    """Return the name of the currently active backend."""
    return git.name
