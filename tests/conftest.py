from pathlib import Path

import pytest

from github_repo_sync.config import Config


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """A valid configuration rooted in a temporary directory.

    The rate limit is raised so tests do not wait on the 10/s default cadence.
    """
    return Config(
        github_token="tok-secret",
        github_user="octo",
        repos_dir=tmp_path / "repos",
        poll_interval=60,
        worker_count=5,
        queue_size=100,
        rate_limit=1000,
    )
