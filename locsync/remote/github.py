"""GitHub REST client for reading translation files from a repository."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import random
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

import httpx

from locsync.exceptions import (
    RemoteAuthorizationError,
    RemoteError,
    RemoteNotFoundError,
    TransientRemoteError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from locsync.config import Settings
    from locsync.services.project_service import RepositoryRef

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"


@dataclass(frozen=True)
class RemoteItem:
    """A file or directory in a repository listing."""

    path: str
    name: str
    type: str
    sha: str = ""
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.type == "dir"


@dataclass(frozen=True)
class RemoteCommit:
    """A commit on a branch."""

    sha: str
    message: str
    author: str
    date: str | None = None


class RemoteRepositoryClient(Protocol):
    """Read access to a remote repository, as used by the pull pipeline."""

    async def list_directory(self, ref: RepositoryRef, path: str) -> list[RemoteItem]: ...

    async def get_file_content(self, ref: RepositoryRef, path: str) -> str: ...

    async def get_branch_head(self, ref: RepositoryRef) -> str: ...


def _parse_retry_after(response: httpx.Response) -> float | None:
    """Seconds to wait before retrying, from ``Retry-After`` or the rate-limit reset."""
    header = response.headers.get("Retry-After")
    if header:
        header = header.strip()
        if header.isdigit():
            return float(header)
        try:
            target = parsedate_to_datetime(header)
        except (TypeError, ValueError):
            logger.warning("Unparseable Retry-After header: %r", header)
        else:
            return max(target.timestamp() - time.time(), 0.0)
    reset = response.headers.get("X-RateLimit-Reset")
    if reset and reset.isdigit():
        return max(float(reset) - time.time(), 0.0)
    return None


def _raise_for_status(response: httpx.Response, what: str) -> None:
    """Map a GitHub error response to the remote error hierarchy."""
    status = response.status_code
    if status < 400:
        return
    rate_limited = status == 429 or (
        status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"
    )
    if rate_limited:
        raise TransientRemoteError(
            f"GitHub rate limit exceeded for {what}", retry_after=_parse_retry_after(response)
        )
    if status >= 500:
        raise TransientRemoteError(
            f"GitHub server error {status} for {what}", retry_after=_parse_retry_after(response)
        )
    if status in (401, 403):
        raise RemoteAuthorizationError(f"GitHub denied access to {what} ({status})")
    if status == 404:
        raise RemoteNotFoundError(f"Not found on GitHub: {what}")
    raise RemoteError(f"GitHub API error {status} for {what}: {response.text[:200]}")


def _decode_base64(content: str, path: str) -> str:
    try:
        raw = base64.b64decode(content.replace("\n", ""), validate=False)
        return raw.decode("utf-8-sig")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise RemoteError(f"Could not decode content of {path}: {exc}") from exc


class GitHubClient:
    """Async GitHub REST API client with retry on transient failures.

    Rate limiting, server errors, and network failures are retried with
    exponential backoff and jitter, honouring ``Retry-After`` when GitHub sends
    it.  Authorization and not-found errors are raised immediately.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "locsync",
        }
        if settings.github_token:
            headers["Authorization"] = f"Bearer {settings.github_token}"
        self._client = httpx.AsyncClient(
            base_url=settings.github_api_url.rstrip("/"),
            headers=headers,
            timeout=settings.remote_timeout_seconds,
            transport=transport,
        )
        self._max_retries = settings.remote_max_retries
        self._base_delay = settings.remote_retry_base_delay
        self._max_delay = settings.remote_retry_max_delay
        self._sleep = sleep

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _backoff_delay(self, attempt: int, retry_after: float | None) -> float:
        if retry_after is not None:
            return min(retry_after, self._max_delay)
        delay = self._base_delay * (2**attempt) + random.uniform(0, self._base_delay)
        return min(delay, self._max_delay)

    async def _get_once(self, url: str, params: dict[str, Any] | None, what: str) -> Any:
        try:
            response = await self._client.get(url, params=params)
        except httpx.TransportError as exc:
            raise TransientRemoteError(f"Network error while fetching {what}: {exc}") from exc
        _raise_for_status(response, what)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(f"Invalid JSON from GitHub for {what}") from exc

    async def _get(self, url: str, *, what: str, params: dict[str, Any] | None = None) -> Any:
        attempt = 0
        while True:
            try:
                return await self._get_once(url, params, what)
            except TransientRemoteError as exc:
                if attempt >= self._max_retries:
                    logger.error("Giving up on %s after %d attempts: %s", what, attempt + 1, exc)
                    raise
                delay = self._backoff_delay(attempt, exc.retry_after)
                attempt += 1
                logger.info(
                    "Retrying %s in %.2f seconds (attempt %d/%d): %s",
                    what,
                    delay,
                    attempt,
                    self._max_retries,
                    exc,
                )
                await self._sleep(delay)

    @staticmethod
    def _repo_url(ref: RepositoryRef, suffix: str) -> str:
        return f"/repos/{quote(ref.owner)}/{quote(ref.repo)}/{suffix}"

    async def list_directory(self, ref: RepositoryRef, path: str) -> list[RemoteItem]:
        """List one directory of the branch.  ``"."`` or ``""`` is the repository root."""
        clean = path.strip("/")
        clean = "" if clean == "." else clean
        url = self._repo_url(ref, f"contents/{quote(clean, safe='/')}")
        data = await self._get(url, params={"ref": ref.branch}, what=f"{ref}:{clean or '/'}")
        if not isinstance(data, list):
            raise RemoteError(f"{clean or '/'} is not a directory in {ref}")
        return [
            RemoteItem(
                path=item.get("path", ""),
                name=item.get("name", ""),
                type=item.get("type", ""),
                sha=item.get("sha", ""),
                size=int(item.get("size") or 0),
            )
            for item in data
        ]

    async def get_file_content(self, ref: RepositoryRef, path: str) -> str:
        """Return the decoded text of one file.

        Files above the contents API size limit come back without inline
        content and are read through the git blob API instead.
        """
        clean = path.strip("/")
        url = self._repo_url(ref, f"contents/{quote(clean, safe='/')}")
        data = await self._get(url, params={"ref": ref.branch}, what=f"{ref}:{clean}")
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise RemoteError(f"{clean} is not a file in {ref}")

        content = data.get("content")
        if content and data.get("encoding", "base64") == "base64":
            return _decode_base64(content, clean)
        if not data.get("size"):
            return ""

        sha = data.get("sha")
        if not sha:
            raise RemoteError(f"GitHub returned no content and no blob sha for {clean}")
        logger.debug("Fetching large file %s through the blob API", clean)
        blob = await self._get(self._repo_url(ref, f"git/blobs/{sha}"), what=f"blob {sha}")
        return _decode_base64(blob.get("content", ""), clean)

    async def list_branches(self, ref: RepositoryRef) -> list[str]:
        data = await self._get(
            self._repo_url(ref, "branches"), params={"per_page": 100}, what=f"branches of {ref}"
        )
        return [branch.get("name", "") for branch in data]

    async def get_branch_head(self, ref: RepositoryRef) -> str:
        """Return the commit sha at the head of the configured branch."""
        data = await self._get(
            self._repo_url(ref, f"branches/{quote(ref.branch, safe='')}"),
            what=f"branch {ref.branch} of {ref.owner}/{ref.repo}",
        )
        sha = (data.get("commit") or {}).get("sha")
        if not sha:
            raise RemoteError(f"Branch {ref.branch} has no head commit")
        return str(sha)

    async def list_commits(
        self, ref: RepositoryRef, *, path: str | None = None, limit: int = 30
    ) -> list[RemoteCommit]:
        params: dict[str, Any] = {"sha": ref.branch, "per_page": max(1, min(limit, 100))}
        if path:
            params["path"] = path.strip("/")
        data = await self._get(
            self._repo_url(ref, "commits"), params=params, what=f"commits of {ref}"
        )
        commits: list[RemoteCommit] = []
        for item in data:
            commit = item.get("commit") or {}
            author = commit.get("author") or {}
            commits.append(
                RemoteCommit(
                    sha=item.get("sha", ""),
                    message=commit.get("message", ""),
                    author=author.get("name", ""),
                    date=author.get("date"),
                )
            )
        return commits
