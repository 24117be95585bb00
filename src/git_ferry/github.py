"""
GitHub REST client for the remote side of the sync.

Only two endpoints are used: the paginated repository listing of a user and
repository deletion. Requests are not retried; a failure surfaces as
`GitHubError` and is handled by the caller for the operation in progress.

Example:
    >>> client = GitHubClient(token="ghp_...")
    >>> repos = client.list_repos("octocat")
    >>> client.delete_repo("octocat", "empty-experiment")
"""

import logging
from typing import Any

import httpx

from .constants import APP_NAME, GITHUB_API_URL, HTTP_TIMEOUT, PAGE_SIZE, USER_AGENT
from .inventory import RemoteRepo

logger = logging.getLogger(APP_NAME)


class GitHubError(Exception):
    """Error from GitHub API operations."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GitHubClient:
    """
    Client for the GitHub REST API.

    Attributes:
        token: Personal access token (needs `repo` and `delete_repo` scopes
            for deletion).
        api_url: API base URL.
        timeout: Seconds before a request is abandoned.
    """

    def __init__(
        self,
        token: str,
        api_url: str = GITHUB_API_URL,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }

    def _request(
        self, method: str, endpoint: str, params: dict[str, str] | None = None
    ) -> httpx.Response:
        """
        Send one API request and map transport and HTTP failures to GitHubError.

        Args:
            method: HTTP method
            endpoint: Path below the API base URL
            params: Query parameters

        Returns:
            The successful response

        Raises:
            GitHubError: On timeouts, network errors and non-2xx responses
        """
        url = f"{self.api_url}{endpoint}"
        try:
            if method == "DELETE":
                response = httpx.delete(url, headers=self.headers, timeout=self.timeout)
            else:
                response = httpx.get(
                    url, params=params, headers=self.headers, timeout=self.timeout
                )
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            raise GitHubError(f"GitHub API timed out: {method} {endpoint}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise GitHubError(
                f"GitHub API error: {status} {e.response.reason_phrase}",
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub API request failed: {e}") from e

    @staticmethod
    def _parse_repo(item: Any) -> RemoteRepo:
        try:
            return RemoteRepo(
                name=item["name"],
                clone_url=item["clone_url"],
                full_name=item.get("full_name", ""),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise GitHubError(f"Unexpected repository record: {item!r}") from e

    def list_repos(self, username: str) -> list[RemoteRepo]:
        """
        List every repository of a user.

        Pages of PAGE_SIZE are requested from page 1 until the first empty page.

        Args:
            username: The account to list

        Returns:
            Repositories in API order

        Raises:
            GitHubError: If any page fails or is not a JSON list
        """
        repos: list[RemoteRepo] = []
        page = 1
        while True:
            response = self._request(
                "GET",
                f"/users/{username}/repos",
                params={"per_page": str(PAGE_SIZE), "page": str(page)},
            )
            try:
                batch = response.json()
            except ValueError as e:
                raise GitHubError("Failed to parse repository listing") from e
            if not isinstance(batch, list):
                raise GitHubError("Repository listing is not a JSON list")
            if not batch:
                break
            repos.extend(self._parse_repo(item) for item in batch)
            page += 1

        logger.debug(f"Listed {len(repos)} repos for {username} in {page - 1} page(s)")
        return repos

    def delete_repo(self, owner: str, name: str) -> None:
        """
        Delete a repository. Deleting one that no longer exists succeeds.

        Args:
            owner: Owning account
            name: Repository name

        Raises:
            GitHubError: On any failure other than 404
        """
        try:
            self._request("DELETE", f"/repos/{owner}/{name}")
        except GitHubError as e:
            if e.status_code == 404:
                logger.info(f"{owner}/{name} already deleted")
                return
            raise
