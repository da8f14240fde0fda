from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .records import dataset_to_json


GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"

logger = logging.getLogger(__name__)


class StoreStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class StoreResult:
    status: StoreStatus
    document: dict[str, Any] | None = None
    version: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is StoreStatus.OK


def _key(name: str) -> str:
    # "Weekly Scrims #3" -> "Weekly_Scrims_3"
    s = re.sub(r"\s+", "_", (name or "").strip())
    s = re.sub(r"[^0-9A-Za-z_-]", "", s)
    return s


def document_path(name: str, directory: str = "leaderboards") -> str:
    key = _key(name)
    if not key:
        raise ValueError(f"leaderboard name {name!r} has no usable characters")
    directory = directory.strip("/")
    return f"{directory}/{key}.json" if directory else f"{key}.json"


def _describe(r: httpx.Response) -> str:
    try:
        msg = r.json().get("message")
    except (ValueError, AttributeError):
        msg = None
    return f"HTTP {r.status_code}: {msg or r.text[:200]}"


class GitHubContentsClient:
    """
    Read/write JSON documents in a GitHub repository via the contents API.

    The blob SHA returned by GitHub is the version token: writes that pass a
    stale SHA are rejected by GitHub with 409, which we report as CONFLICT.
    None of the public methods raise for HTTP or transport errors.
    """

    def __init__(
        self,
        token: str,
        repo: str,
        branch: str = "main",
        *,
        base_url: str = GITHUB_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        owner, _, name = (repo or "").partition("/")
        if not owner or not name:
            raise ValueError(f"repo must look like 'owner/name', got {repo!r}")
        self._token = token
        self._owner = owner
        self._repo = name
        self._branch = branch
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def repo(self) -> str:
        return f"{self._owner}/{self._repo}"

    def _url(self, path: str) -> str:
        return f"{self._base_url}/repos/{self._owner}/{self._repo}/contents/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _client(self, read: float = 30.0) -> httpx.AsyncClient:
        timeout = httpx.Timeout(connect=10.0, read=read, write=10.0, pool=10.0)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _get(self, path: str, *, raw: bool = False) -> httpx.Response:
        headers = self._headers()
        if raw:
            headers["Accept"] = "application/vnd.github.raw+json"
        async with self._client() as client:
            return await client.get(self._url(path), headers=headers, params={"ref": self._branch})

    async def fetch(self, path: str) -> StoreResult:
        try:
            r = await self._get(path)
        except httpx.HTTPError as e:
            logger.warning("GitHub: fetch %s failed: %r", path, e)
            return StoreResult(StoreStatus.FAILED, error=f"{type(e).__name__}: {e}")

        if r.status_code == 404:
            return StoreResult(StoreStatus.NOT_FOUND, error=f"{path} not found")
        if r.status_code != 200:
            logger.warning("GitHub: fetch %s -> %s", path, _describe(r))
            return StoreResult(StoreStatus.FAILED, error=_describe(r))

        try:
            data = r.json()
        except ValueError as e:
            logger.warning("GitHub: fetch %s returned a non-JSON body", path)
            return StoreResult(StoreStatus.FAILED, error=f"unreadable response for {path}: {e}")
        # A directory comes back as a list; submodules/symlinks have another type.
        if isinstance(data, list) or (isinstance(data, dict) and data.get("type") != "file"):
            return StoreResult(StoreStatus.NOT_FOUND, error=f"{path} is not a file")
        if not isinstance(data, dict):
            return StoreResult(StoreStatus.FAILED, error=f"unreadable response for {path}")

        sha = data.get("sha")
        if data.get("encoding") == "base64":
            try:
                raw = base64.b64decode(data.get("content") or "")
            except binascii.Error as e:
                return StoreResult(StoreStatus.FAILED, version=sha, error=f"invalid document at {path}: {e}")
        else:
            # Files over 1 MB come back with encoding "none" and no content.
            # No bytes is a store failure, not an invalid document: no version.
            raw_result = await self._fetch_raw(path)
            if isinstance(raw_result, str):
                return StoreResult(StoreStatus.FAILED, error=raw_result)
            raw = raw_result

        try:
            document = json.loads(raw.decode("utf-8")) if raw.strip() else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return StoreResult(StoreStatus.FAILED, version=sha, error=f"invalid document at {path}: {e}")
        if not isinstance(document, dict):
            return StoreResult(StoreStatus.FAILED, version=sha, error=f"invalid document at {path}: not an object")

        return StoreResult(StoreStatus.OK, document=document, version=sha)

    async def _fetch_raw(self, path: str) -> bytes | str:
        """File bytes via the raw media type, or an error message."""
        try:
            r = await self._get(path, raw=True)
        except httpx.HTTPError as e:
            logger.warning("GitHub: raw fetch %s failed: %r", path, e)
            return f"{type(e).__name__}: {e}"
        if r.status_code != 200:
            logger.warning("GitHub: raw fetch %s -> %s", path, _describe(r))
            return _describe(r)
        return r.content

    async def put(
        self,
        path: str,
        document: dict[str, Any],
        expected_version: str | None = None,
        *,
        message: str,
    ) -> StoreResult:
        """
        Create or replace `path`.

        Without `expected_version` this only succeeds if the file does not
        exist yet (GitHub answers 422 otherwise, reported as CONFLICT).
        """
        content = dataset_to_json(document).encode("utf-8")
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self._branch,
        }
        if expected_version:
            body["sha"] = expected_version

        try:
            async with self._client() as client:
                r = await client.put(self._url(path), headers=self._headers(), json=body)
        except httpx.HTTPError as e:
            logger.warning("GitHub: put %s failed: %r", path, e)
            return StoreResult(StoreStatus.FAILED, error=f"{type(e).__name__}: {e}")

        if r.status_code in (200, 201):
            try:
                sha = ((r.json() or {}).get("content") or {}).get("sha")
            except (ValueError, AttributeError) as e:
                # The write may have landed, but without the new sha we can't build on it.
                logger.warning("GitHub: put %s returned an unreadable body", path)
                return StoreResult(StoreStatus.FAILED, error=f"unreadable response for {path}: {e}")
            return StoreResult(StoreStatus.OK, document=document, version=sha)
        if r.status_code == 409 or (r.status_code == 422 and not expected_version):
            return StoreResult(StoreStatus.CONFLICT, error=_describe(r))
        if r.status_code == 404:
            return StoreResult(StoreStatus.NOT_FOUND, error=_describe(r))

        logger.warning("GitHub: put %s -> %s", path, _describe(r))
        return StoreResult(StoreStatus.FAILED, error=_describe(r))

    async def delete(self, path: str, expected_version: str, *, message: str) -> StoreResult:
        body = {"message": message, "sha": expected_version, "branch": self._branch}
        try:
            async with self._client() as client:
                # httpx.delete() has no body argument.
                r = await client.request("DELETE", self._url(path), headers=self._headers(), json=body)
        except httpx.HTTPError as e:
            logger.warning("GitHub: delete %s failed: %r", path, e)
            return StoreResult(StoreStatus.FAILED, error=f"{type(e).__name__}: {e}")

        if r.status_code == 200:
            return StoreResult(StoreStatus.OK)
        if r.status_code == 404:
            return StoreResult(StoreStatus.NOT_FOUND, error=f"{path} not found")
        if r.status_code == 409:
            return StoreResult(StoreStatus.CONFLICT, error=_describe(r))

        logger.warning("GitHub: delete %s -> %s", path, _describe(r))
        return StoreResult(StoreStatus.FAILED, error=_describe(r))
