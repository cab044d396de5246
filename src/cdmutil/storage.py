"""
Manifest store collaborators.

A manifest store reads and writes CDM JSON documents addressed by location
strings. Two implementations are provided:

- LocalManifestStore: documents below a root directory on disk
- AdlsManifestStore: documents in an ADLS Gen2 file system, accessed over the
  DFS REST endpoint with an Azure AD bearer token

Locations inside a store are resolved relative to the referencing document,
the way CDM corpus paths are: ``Entity.cdm.json`` next to the manifest,
``Sub/Sub.manifest.cdm.json`` one folder down, ``/Tables/x.cdm.json`` (or
``local:/Tables/x.cdm.json``) from the store root.
"""

import json
import logging
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote, urlparse

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
)

from .auth import CredentialFactory, TokenManager
from .constants import APIConfig
from .errors import ManifestFormatError, ManifestNotFoundError, StorageError

logger = logging.getLogger(__name__)

CORPUS_ADAPTER_PREFIX = "local:"


class TransientStorageError(StorageError):
    """Exception for transient storage errors (429, 5xx) that should be retried."""


def _is_transient_error(exception: BaseException) -> bool:
    """Check if exception is a transient error that should be retried."""
    if isinstance(exception, TransientStorageError):
        return True
    if isinstance(exception, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True
    return False


class ManifestStore(ABC):
    """Base class for manifest document stores."""

    @property
    @abstractmethod
    def root_url(self) -> str:
        """Location of the store root (used as external data source location)."""

    @abstractmethod
    def to_relative(self, location: str) -> str:
        """Convert a location to a posix path relative to the store root."""

    @abstractmethod
    def to_location(self, relative_path: str) -> str:
        """Convert a root-relative posix path to a location."""

    @abstractmethod
    def read_text(self, location: str) -> str:
        """
        Read a document as text.

        Raises:
            ManifestNotFoundError: If nothing exists at the location.
            StorageError: On any other transport failure.
        """

    @abstractmethod
    def write_text(self, location: str, content: str) -> bool:
        """Write a document, replacing any existing content."""

    @abstractmethod
    def exists(self, location: str) -> bool:
        """Check whether a document exists."""

    def read(self, location: str) -> Dict[str, Any]:
        """
        Read and parse a JSON document.

        Raises:
            ManifestNotFoundError: If the document is unreachable.
            ManifestFormatError: If the content is not a JSON object.
        """
        content = self.read_text(location)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ManifestFormatError(
                f"Invalid JSON in {location}: {e}",
                location=location,
                details=str(e),
            ) from e

        if not isinstance(data, dict):
            raise ManifestFormatError(
                f"Expected a JSON object in {location}, got {type(data).__name__}",
                location=location,
            )
        return data

    def write(self, location: str, document: Dict[str, Any]) -> bool:
        """Serialize and write a JSON document."""
        return self.write_text(location, json.dumps(document, indent=2))

    def resolve(self, base_location: str, reference: str) -> str:
        """
        Resolve a document reference against the referencing document.

        Raises:
            ManifestFormatError: If the reference escapes the store root.
        """
        if reference.startswith(CORPUS_ADAPTER_PREFIX):
            reference = reference[len(CORPUS_ADAPTER_PREFIX):]

        if reference.startswith("/"):
            relative = reference.lstrip("/")
        else:
            base_dir = posixpath.dirname(self.to_relative(base_location))
            relative = posixpath.join(base_dir, reference)

        relative = posixpath.normpath(relative)
        if relative == ".." or relative.startswith("../"):
            raise ManifestFormatError(
                f"Reference '{reference}' escapes the store root",
                location=base_location,
            )
        return self.to_location(relative)

    def folder_of(self, location: str) -> str:
        """Root-relative folder containing a document ('' for the root)."""
        folder = posixpath.dirname(self.to_relative(location))
        return "" if folder == "." else folder


class LocalManifestStore(ManifestStore):
    """
    Manifest store backed by a directory on disk.

    Example:
        >>> store = LocalManifestStore("/data/cdm")
        >>> manifest = store.read("Tables/Tables.manifest.cdm.json")
    """

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir).resolve()

    @property
    def root_url(self) -> str:
        return self.root_dir.as_posix()

    def to_relative(self, location: str) -> str:
        path = Path(location)
        if path.is_absolute():
            try:
                return path.resolve().relative_to(self.root_dir).as_posix()
            except ValueError:
                raise ManifestNotFoundError(
                    f"Location {location} is outside store root {self.root_dir}",
                    location=location,
                )
        return posixpath.normpath(location.replace("\\", "/").lstrip("/"))

    def to_location(self, relative_path: str) -> str:
        return str(self.root_dir / relative_path)

    def _path(self, location: str) -> Path:
        return self.root_dir / self.to_relative(location)

    def read_text(self, location: str) -> str:
        path = self._path(location)
        logger.debug(f"Reading {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError as e:
            raise ManifestNotFoundError(f"Document not found: {location}", location=location) from e
        except IsADirectoryError as e:
            raise ManifestNotFoundError(f"Not a document: {location}", location=location) from e
        except OSError as e:
            raise StorageError(f"Error reading {location}: {e}", location=location) from e

    def write_text(self, location: str, content: str) -> bool:
        path = self._path(location)
        logger.debug(f"Writing {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            raise StorageError(f"Error writing {location}: {e}", location=location) from e
        return True

    def exists(self, location: str) -> bool:
        return self._path(location).is_file()


@dataclass(frozen=True)
class AdlsContext:
    """Addressing and auth settings for an ADLS Gen2 file system."""
    storage_account: str
    file_system_name: str
    msi_auth: bool = True
    tenant_id: Optional[str] = None

    @property
    def base_url(self) -> str:
        return f"https://{self.storage_account}{APIConfig.DFS_HOST_SUFFIX}/{self.file_system_name}"

    @classmethod
    def from_url(cls, url: str, tenant_id: Optional[str] = None, msi_auth: bool = True) -> 'AdlsContext':
        """
        Derive the context from a document URL such as
        ``https://account.dfs.core.windows.net/filesystem/path/x.manifest.cdm.json``.

        Raises:
            StorageError: If the URL is not an ADLS Gen2 document URL.
        """
        parsed = urlparse(url)
        host = parsed.hostname or ""
        segments = [s for s in parsed.path.split("/") if s]
        if parsed.scheme != "https" or not host.endswith(APIConfig.DFS_HOST_SUFFIX) or not segments:
            raise StorageError(f"Not an ADLS Gen2 URL: {url}", location=url)
        return cls(
            storage_account=host[:-len(APIConfig.DFS_HOST_SUFFIX)],
            file_system_name=unquote(segments[0]),
            msi_auth=msi_auth,
            tenant_id=tenant_id,
        )


class AdlsManifestStore(ManifestStore):
    """
    Manifest store backed by ADLS Gen2 (DFS REST endpoint).

    Transient failures (429, 5xx, timeouts, connection errors) are retried
    with exponential backoff.
    """

    def __init__(
        self,
        context: AdlsContext,
        token_manager: Optional[TokenManager] = None,
        session: Optional[requests.Session] = None,
        timeout: int = APIConfig.DEFAULT_TIMEOUT_SECONDS,
    ):
        self.context = context
        if token_manager is None:
            credential = CredentialFactory.create_credential(context.tenant_id, context.msi_auth)
            token_manager = TokenManager(credential, APIConfig.STORAGE_SCOPE, tenant_id=context.tenant_id)
        self._token_manager = token_manager
        self._session = session or requests.Session()
        self._timeout = timeout

    @property
    def root_url(self) -> str:
        return self.context.base_url

    def to_relative(self, location: str) -> str:
        if not location.lower().startswith("https://"):
            return posixpath.normpath(location.lstrip("/"))

        base = self.context.base_url.lower() + "/"
        if not location.lower().startswith(base):
            raise ManifestNotFoundError(
                f"Location {location} is outside file system {self.context.base_url}",
                location=location,
            )
        return unquote(location[len(base):])

    def to_location(self, relative_path: str) -> str:
        return f"{self.context.base_url}/{relative_path}"

    def _url(self, location: str) -> str:
        return f"{self.context.base_url}/{quote(self.to_relative(location))}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token_manager.get_access_token()}",
            "x-ms-version": APIConfig.STORAGE_API_VERSION,
        }

    @retry(
        stop=stop_after_attempt(APIConfig.MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=2,
            min=APIConfig.RETRY_MIN_WAIT_SECONDS,
            max=APIConfig.RETRY_MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception(_is_transient_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.debug(f"{method} {url}")
        response = self._session.request(
            method, url, headers=self._headers(), timeout=self._timeout, **kwargs
        )
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"Transient storage error (HTTP {response.status_code}) for {url}")
            raise TransientStorageError(
                f"Transient storage error (HTTP {response.status_code})",
                status_code=response.status_code,
                location=url,
            )
        return response

    def _request(self, method: str, location: str, **kwargs) -> requests.Response:
        url = self._url(location)
        try:
            return self._send(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Storage request failed: {method} {url}: {e}")
            raise StorageError(f"Storage request failed for {location}: {e}", location=location) from e

    @staticmethod
    def _raise_for_status(response: requests.Response, location: str, operation: str) -> None:
        if response.status_code < 300:
            return
        if response.status_code == 404:
            raise ManifestNotFoundError(f"Document not found: {location}", location=location)
        raise StorageError(
            f"{operation} failed for {location} (HTTP {response.status_code}): {response.text[:200]}",
            status_code=response.status_code,
            location=location,
        )

    def read_text(self, location: str) -> str:
        response = self._request("GET", location)
        self._raise_for_status(response, location, "Read")
        return response.text

    def write_text(self, location: str, content: str) -> bool:
        data = content.encode("utf-8")

        response = self._request("PUT", location, params={"resource": "file"})
        self._raise_for_status(response, location, "Create")

        response = self._request(
            "PATCH", location,
            params={"action": "append", "position": 0},
            data=data,
        )
        self._raise_for_status(response, location, "Append")

        response = self._request(
            "PATCH", location,
            params={"action": "flush", "position": len(data)},
        )
        self._raise_for_status(response, location, "Flush")

        logger.info(f"Wrote {location} ({len(data)} bytes)")
        return True

    def exists(self, location: str) -> bool:
        response = self._request("HEAD", location)
        if response.status_code == 404:
            return False
        self._raise_for_status(response, location, "Exists check")
        return True


def create_store(location: str, tenant_id: Optional[str] = None, local_root: Optional[str] = None) -> ManifestStore:
    """
    Pick a store for a manifest location.

    ``local_root`` forces a LocalManifestStore; otherwise ADLS URLs get an
    AdlsManifestStore and anything else is read from the current directory.
    """
    if local_root:
        return LocalManifestStore(local_root)
    if location.lower().startswith("https://"):
        return AdlsManifestStore(AdlsContext.from_url(location, tenant_id=tenant_id))
    return LocalManifestStore(".")
