"""Global constants and defaults for github-repo-sync.

This module defines the application identifiers, the GitHub API parameters,
and the default values applied to optional configuration keys.
"""

# --- Identity ---
APP_NAME = "github-repo-sync"
"""str: The human-readable application name (also the logger name)."""

# --- Paths ---
DEFAULT_CONFIG_PATH = "config.yaml"
"""str: The configuration file read when no `-config` flag is given."""

# --- GitHub API ---
DEFAULT_API_URL = "https://api.github.com"
"""str: The REST API root. Override for GitHub Enterprise."""

PAGE_SIZE = 100
"""int: Repositories requested per listing page (the API maximum)."""

LIST_AFFILIATION = "owner,organization_member"
"""str: Affiliations requested when listing the token owner's repositories."""

# --- Git transport ---
GIT_USERNAME = "git"
"""str: The fixed basic-auth username; the token is sent as the password."""

# --- Defaults ---
DEFAULT_WORKER_COUNT = 5
DEFAULT_QUEUE_SIZE = 100
DEFAULT_RATE_LIMIT = 10.0
"""float: Operations per second allowed for each worker."""

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_LOG_SIZE = 5 * 1024 * 1024

QUEUE_POLL_SECONDS = 0.1
"""float: How long a blocked enqueue/dequeue waits before re-checking shutdown."""
