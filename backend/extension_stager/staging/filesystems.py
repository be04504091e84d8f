"""Filesystem handles used to pull an extension's build outputs to local disk.

Every handle implements ``copy_to_local(remote_path, local_path)``: copy the
file or directory tree at ``remote_path`` so that it becomes ``local_path``.
A missing remote path must raise (FileNotFoundError) rather than leave an
empty destination behind.
"""

from __future__ import annotations
import logging
import pathlib
import shutil
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable
from urllib.parse import unquote, urlparse

import httpx

from extension_stager.core.config import settings

_log = logging.getLogger(__name__)


@runtime_checkable
class RemoteFileSystem(Protocol):
    def copy_to_local(self, remote_path: str, local_path: pathlib.Path) -> None: ...


def join_remote(base: str, *parts: str) -> str:
    """Join path segments onto a remote location (plain path or URI)."""
    joined = base.rstrip('/')
    for part in parts:
        part = part.strip('/')
        if part:
            joined = f"{joined}/{part}"
    return joined


def _as_local_path(location: str) -> pathlib.Path:
    parsed = urlparse(location)
    if parsed.scheme == 'file':
        return pathlib.Path(unquote(parsed.path))
    if parsed.scheme and len(parsed.scheme) > 1:
        raise ValueError(f'unsupported scheme for local filesystem: {location}')
    return pathlib.Path(location)


class LocalFileSystem:
    """Build locations on local or mounted storage (paths or file:// URIs)."""

    def copy_to_local(self, remote_path: str, local_path: pathlib.Path) -> None:
        source = _as_local_path(remote_path)
        if not source.exists():
            raise FileNotFoundError(f'remote path does not exist: {remote_path}')
        local_path = pathlib.Path(local_path)
        if source.is_dir():
            shutil.copytree(source, local_path)
        else:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, local_path)


class GitHubContentsFileSystem:
    """Build locations stored in a GitHub repository.

    ``repo_base_url`` is either ``https://raw.githubusercontent.com/<owner>/<repo>/<branch>``
    or ``https://github.com/<owner>/<repo>`` (branch ``main``). Remote paths are
    repository-relative and are fetched recursively through the contents API.
    """

    api_root = 'https://api.github.com'

    def __init__(self, repo_base_url: str, *, timeout: float = 30, client: Optional[httpx.Client] = None):
        self.owner, self.repo, self.branch = self._parse_repo_url(repo_base_url)
        self.timeout = timeout
        self._client = client

    @staticmethod
    def _parse_repo_url(repo_base_url: str) -> Tuple[str, str, str]:
        parts = repo_base_url.rstrip('/').split('/')
        owner = repo = branch = None
        if 'raw.githubusercontent.com' in repo_base_url:
            if len(parts) >= 6:
                owner = parts[3]; repo = parts[4]; branch = parts[5]
        else:
            if len(parts) >= 5 and 'github.com' in parts[2]:
                owner = parts[3]; repo = parts[4]; branch = 'main'
        if not (owner and repo and branch):
            raise ValueError(f'unsupported repo url: {repo_base_url}')
        return owner, repo, branch

    def _get(self, client: httpx.Client, url: str, **kwargs: Any) -> httpx.Response:
        return client.get(url, timeout=self.timeout, **kwargs)

    def copy_to_local(self, remote_path: str, local_path: pathlib.Path) -> None:
        if self._client is not None:
            self._fetch_path(self._client, remote_path.strip('/'), pathlib.Path(local_path), top=True)
            return
        with httpx.Client() as client:
            self._fetch_path(client, remote_path.strip('/'), pathlib.Path(local_path), top=True)

    def _fetch_path(self, client: httpx.Client, path: str, target: pathlib.Path, *, top: bool = False) -> None:
        api_url = f'{self.api_root}/repos/{self.owner}/{self.repo}/contents/{path}'
        r = self._get(client, api_url, params={'ref': self.branch})
        if r.status_code == 404:
            raise FileNotFoundError(f'path {path} not found in {self.owner}/{self.repo}@{self.branch}')
        r.raise_for_status()
        data = r.json()
        if isinstance(data, dict):
            # single file: the destination is the file itself
            self._download(client, data, target if top else target / str(data.get('name')))
            return
        if not isinstance(data, list):
            raise RuntimeError(f'unexpected contents payload for {path}')
        target.mkdir(parents=True, exist_ok=True)
        for entry in data:
            name = entry.get('name')
            if not name:
                continue
            etype = entry.get('type')
            if etype == 'file':
                self._download(client, entry, target / name)
            elif etype == 'dir':
                self._fetch_path(client, entry.get('path') or f'{path}/{name}', target / name)
            else:
                _log.debug("skipping %s entry %s", etype, entry.get('path'))

    def _download(self, client: httpx.Client, entry: Dict[str, Any], dst: pathlib.Path) -> None:
        download_url = entry.get('download_url')
        if not download_url:
            raise RuntimeError(f"no download_url for file {entry.get('path')}")
        rr = self._get(client, download_url)
        rr.raise_for_status()
        dst.parent.mkdir(parents=True, exist_ok=True)
        dst.write_bytes(rr.content)


def default_filesystem() -> RemoteFileSystem:
    kind = (settings.remote_fs or 'local').strip().lower()
    if kind == 'local':
        return LocalFileSystem()
    if kind == 'github':
        if not settings.remote_url:
            raise ValueError('EXTENSION_STAGER_REMOTE_URL is required for the github filesystem')
        return GitHubContentsFileSystem(settings.remote_url)
    raise ValueError(f'unknown remote filesystem kind: {settings.remote_fs}')
