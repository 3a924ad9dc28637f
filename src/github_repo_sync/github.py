"""GitHub REST client used to discover the repositories to mirror."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import httpx

from .config import Config
from .constants import APP_NAME, LIST_AFFILIATION, PAGE_SIZE
from .exceptions import ListError

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class Repository:
    """Snapshot of a remote repository as returned by the listing API.

    Attributes:
        name (str): Repository name, unique within the owning account.
        clone_url (str): HTTPS clone URL.
        default_branch (str): Branch checked out by a fresh clone.
        owner (str): Login of the owning user or organisation.
    """

    name: str
    clone_url: str
    default_branch: str = "main"
    owner: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Repository":
        """Builds a Repository from one item of a `/user/repos` response.

        Args:
            data (dict[str, Any]): One decoded JSON item.

        Returns:
            Repository: The parsed descriptor.

        Raises:
            ValueError: If the item is not an object or a field has the
                wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a repository object, got {data!r}")
        name = data.get("name")
        clone_url = data.get("clone_url")
        if not isinstance(name, str) or not isinstance(clone_url, str):
            raise ValueError(
                f"Repository item lacks a string name or clone_url: {data!r}"
            )

        owner = data.get("owner") or {}
        if not isinstance(owner, dict):
            raise ValueError(f"Repository {name!r} has a malformed owner")
        login = owner.get("login") or ""
        branch = data.get("default_branch") or "main"
        if not isinstance(login, str) or not isinstance(branch, str):
            raise ValueError(f"Repository {name!r} has malformed owner or branch")

        return cls(
            name=name, clone_url=clone_url, default_branch=branch, owner=login
        )


class GitHubClient:
    """Lists repositories owned by an account, one page per request.

    Uses the authenticated `/user/repos` endpoint so private repositories are
    included, and keeps only those owned by the requested account. This works
    both for the token owner's own account and for organisations the token
    owner belongs to.
    """

    def __init__(self, config: Config) -> None:
        """Initializes the client.

        Args:
            config (Config): Token, API root and request timeout.
        """
        self.token = config.github_token
        self.base_url = config.api_url
        self.timeout = config.request_timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Returns the HTTP client, creating it on first use."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=self.timeout,
            )
        return self._client

    def close(self) -> None:
        """Closes the HTTP client, if one was created."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _get_page(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        try:
            response = self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise ListError(f"Failed to get repositories list: {e}") from e

        if response.status_code != 200:
            raise ListError(
                f"Failed to get repositories list: "
                f"{response.status_code} - {response.text[:200]}"
            )
        return response

    def iter_pages(self, account: str) -> Iterator[list[Repository]]:
        """Yields the account's repositories page by page.

        The generator is lazy: a page is requested only when the caller asks
        for it, so a caller can stop early and no further requests are made.
        Pagination ends when the response carries no `next` link.

        Args:
            account (str): Owner login to keep (case-insensitive).

        Yields:
            list[Repository]: The repositories of one page owned by `account`.

        Raises:
            ListError: If a page request fails or a page is malformed.
        """
        url: str | None = "/user/repos"
        params: dict[str, Any] | None = {
            "visibility": "all",
            "affiliation": LIST_AFFILIATION,
            "per_page": PAGE_SIZE,
        }
        wanted = account.lower()

        while url is not None:
            response = self._get_page(url, params)
            try:
                items = response.json()
                repos = [Repository.from_api(item) for item in items]
            except (ValueError, TypeError) as e:
                raise ListError(f"Malformed repositories page: {e}") from e

            yield [r for r in repos if r.owner.lower() == wanted]

            # The next link already carries every query parameter.
            url = response.links.get("next", {}).get("url")
            params = None

    def list_repositories(self, account: str) -> Iterator[Repository]:
        """Yields every repository owned by `account`, across all pages."""
        for page in self.iter_pages(account):
            yield from page
