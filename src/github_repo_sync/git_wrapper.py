import base64
import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def basic_auth_header(username: str, password: str) -> str:
    """Builds an HTTP basic-auth header line for git's `http.extraHeader`.

    Args:
        username (str): The basic-auth username.
        password (str): The password (a personal access token).

    Returns:
        str: A header of the form `Authorization: Basic <base64>`.
    """
    creds = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Authorization: Basic {creds}"


def redact(text: str, secrets: list[str]) -> str:
    """Replaces every occurrence of the given secrets with `***`."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


def _git_env(auth_header: str | None) -> dict[str, str]:
    """Environment for a non-interactive git subprocess.

    The auth header is injected through `GIT_CONFIG_*` variables so it never
    lands in `.git/config` or on the command line.
    """
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    if auth_header:
        env["GIT_CONFIG_COUNT"] = "1"
        env["GIT_CONFIG_KEY_0"] = "http.extraHeader"
        env["GIT_CONFIG_VALUE_0"] = auth_header
    return env


def _run_git(
    args: list[str], cwd: Path, auth_header: str | None = None, capture: bool = True
) -> str:
    """Executes a git command, translating failures into RuntimeError.

    Raises:
        RuntimeError: If git exits non-zero. The message carries git's stderr
            with the auth header removed.
    """
    try:
        res = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=True,
            env=_git_env(auth_header),
        )
        return res.stdout.strip() if capture else ""
    except subprocess.CalledProcessError as e:
        secrets = [auth_header.split()[-1]] if auth_header else []
        detail = (e.stderr or "").strip() or str(e)
        raise RuntimeError(f"Git error: {redact(detail, secrets)}") from e


class GitRepo:
    """A wrapper around the Git command-line interface for a local mirror.

    Every command runs non-interactively. When an auth header is given it is
    attached to network operations (clone, fetch) only through the process
    environment.

    Attributes:
        path (Path): The file system path to the repository root.
        auth_header (str | None): Optional `Authorization: ...` header line.
    """

    def __init__(self, path: Path, auth_header: str | None = None):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            auth_header (str | None): Header sent on network operations.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        self.auth_header = auth_header
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def clone(cls, url: str, dest: Path, auth_header: str | None = None) -> "GitRepo":
        """Clones `url` into `dest` and returns the new repository.

        Args:
            url (str): The remote clone URL.
            dest (Path): Target directory; must not exist yet.
            auth_header (str | None): Header sent to the remote.

        Returns:
            GitRepo: A wrapper for the freshly cloned mirror.

        Raises:
            RuntimeError: If `git clone` fails.
        """
        _run_git(["clone", "--", url, str(dest)], dest.parent, auth_header)
        return cls(dest, auth_header)

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional): Whether to capture and return stdout.
                Defaults to True.

        Returns:
            str: The stripped stdout of the command if capture is True,
                otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        return _run_git(args, self.path, self.auth_header, capture)

    def fetch(self, remote: str = "origin") -> None:
        """Downloads objects and refs from `remote` without touching the worktree."""
        self._run(["fetch", "--quiet", remote])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'origin/main').

        Returns:
            str | None: The full SHA-1 hash, or None if the revision could not
                be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        except Exception as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def upstream(self) -> str | None:
        """Returns the upstream ref of the current branch (e.g. 'origin/main').

        Returns:
            str | None: The short upstream name, or None when the branch has no
                upstream or HEAD is detached.
        """
        try:
            return self._run(
                ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"]
            )
        except Exception as e:
            logger.debug(f"No upstream for {self.path.name}: {e}")
            return None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Checks whether `ancestor` is reachable from `descendant`.

        Raises:
            RuntimeError: If git cannot answer (e.g. an unknown revision).
        """
        res = subprocess.run(
            ["git", "merge-base", "--is-ancestor", ancestor, descendant],
            cwd=self.path,
            capture_output=True,
            text=True,
            env=_git_env(None),
        )
        if res.returncode == 0:
            return True
        if res.returncode == 1:
            return False
        raise RuntimeError(f"Git error: {res.stderr.strip()}")

    def merge_ff_only(self, target: str) -> None:
        """Advances the current branch to `target` without creating a merge commit."""
        self._run(["merge", "--ff-only", "--quiet", target])
