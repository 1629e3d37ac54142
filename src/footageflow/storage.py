"""Blob store clients used to fetch source media and publish compiled stories."""

from __future__ import annotations

import logging
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import cloudinary.exceptions
import cloudinary.uploader
import requests

from footageflow.config import get_config
from footageflow.exceptions import FetchError, MissingCredentialsError, PublishError

logger = logging.getLogger(__name__)

__all__ = ["BlobStore", "CloudinaryBlobStore", "HttpBlobStore", "LocalBlobStore"]

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class BlobStore(ABC):
    """Abstract blob store.

    Implementations must raise FetchError from `download` and PublishError
    from `upload`; the pipeline never retries either call.
    """

    @abstractmethod
    def download(self, url: str, destination: Path) -> Path:
        """Fetch `url` into `destination` and return the written path."""

    @abstractmethod
    def upload(self, local_path: Path, key: str) -> str:
        """Store `local_path` under `key` and return its public URL."""


def _check_downloaded(url: str, destination: Path) -> Path:
    if not destination.exists() or destination.stat().st_size == 0:
        raise FetchError(f"Download of {url} produced an empty file")
    return destination


def _download_over_http(session: requests.Session, url: str, destination: Path, timeout: float) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
    except requests.Timeout as e:
        raise FetchError(f"Timed out after {timeout}s downloading {url}") from e
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else "unknown"
        raise FetchError(f"Downloading {url} failed with HTTP {status}") from e
    except requests.RequestException as e:
        raise FetchError(f"Downloading {url} failed: {e}") from e
    except OSError as e:
        raise FetchError(f"Cannot write {destination}: {e}") from e
    return _check_downloaded(url, destination)


class HttpBlobStore(BlobStore):
    """Generic HTTP object store: GET to download, PUT to upload.

    Args:
        upload_base_url: Base URL objects are PUT to (`<base>/<key>`).
        public_base_url: Base URL objects are served from. Defaults to upload_base_url.
        token: Optional bearer token sent with uploads.
        timeout: Seconds allowed per transfer. Defaults to the configured `transfer_timeout`.
    """

    def __init__(
        self,
        upload_base_url: str,
        public_base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.upload_base_url = upload_base_url.rstrip("/")
        self.public_base_url = (public_base_url or upload_base_url).rstrip("/")
        self.token = token if token is not None else os.environ.get("FOOTAGEFLOW_BLOB_TOKEN")
        self.timeout = timeout if timeout is not None else get_config().transfer_timeout
        self.session = session or requests.Session()

    def download(self, url: str, destination: Path) -> Path:
        logger.info("Downloading %s", url)
        return _download_over_http(self.session, url, Path(destination), self.timeout)

    def upload(self, local_path: Path, key: str) -> str:
        headers = {"Content-Type": "video/mp4"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.upload_base_url}/{key.lstrip('/')}"
        logger.info("Uploading %s to %s", local_path, url)
        try:
            with open(local_path, "rb") as f:
                response = self.session.put(url, data=f, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as e:
            raise PublishError(f"Timed out after {self.timeout}s uploading to {url}") from e
        except requests.RequestException as e:
            raise PublishError(f"Uploading to {url} failed: {e}") from e
        except OSError as e:
            raise PublishError(f"Cannot read {local_path}: {e}") from e
        return f"{self.public_base_url}/{key.lstrip('/')}"


class CloudinaryBlobStore(BlobStore):
    """Cloudinary video storage through the official SDK.

    `upload_large` sends files above `chunk_size` in chunks, as Cloudinary
    requires for large videos. Credentials are passed per call so several
    stores with different accounts can coexist in one process.
    """

    def __init__(
        self,
        cloud_name: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        timeout: float | None = None,
        chunk_size: int = 20 * 1024 * 1024,
        session: requests.Session | None = None,
    ):
        self.cloud_name = cloud_name or os.environ.get("CLOUDINARY_CLOUD_NAME")
        self.api_key = api_key or os.environ.get("CLOUDINARY_API_KEY")
        self.api_secret = api_secret or os.environ.get("CLOUDINARY_API_SECRET")
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise MissingCredentialsError("cloudinary")
        self.timeout = timeout if timeout is not None else get_config().transfer_timeout
        self.chunk_size = chunk_size
        self.session = session or requests.Session()

    def download(self, url: str, destination: Path) -> Path:
        logger.info("Downloading %s", url)
        return _download_over_http(self.session, url, Path(destination), self.timeout)

    def upload_options(self, key: str) -> dict:
        """Options for `cloudinary.uploader.upload_large` storing the file under `key`."""
        key_path = PurePosixPath(key.lstrip("/"))
        options = {
            "resource_type": "video",
            "public_id": key_path.stem,
            "overwrite": True,
            "chunk_size": self.chunk_size,
            "timeout": self.timeout,
            "cloud_name": self.cloud_name,
            "api_key": self.api_key,
            "api_secret": self.api_secret,
        }
        if str(key_path.parent) != ".":
            options["folder"] = key_path.parent.as_posix()
        return options

    def upload(self, local_path: Path, key: str) -> str:
        local_path = Path(local_path)
        try:
            result = cloudinary.uploader.upload_large(str(local_path), **self.upload_options(key))
        except cloudinary.exceptions.Error as e:
            raise PublishError(f"Cloudinary upload of {local_path} failed: {e}") from e
        except OSError as e:
            raise PublishError(f"Cannot upload {local_path}: {e}") from e

        url = result.get("secure_url") or result.get("url")
        if not url:
            raise PublishError(f"Cloudinary response has no URL: {result.get('error', result)}")
        logger.info("Uploaded %s to Cloudinary as %s", local_path, result.get("public_id"))
        return url


class LocalBlobStore(BlobStore):
    """Directory-backed blob store with `file://` URLs.

    Downloads accept `file://` URLs and plain paths; uploads copy into `root`.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    @staticmethod
    def _to_path(url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        if parsed.scheme == "":
            return Path(url)
        raise FetchError(f"Unsupported URL scheme for local store: {url}")

    def download(self, url: str, destination: Path) -> Path:
        source = self._to_path(url)
        destination = Path(destination)
        if not source.is_file():
            raise FetchError(f"Source not found: {url}")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as e:
            raise FetchError(f"Copying {source} failed: {e}") from e
        return _check_downloaded(url, destination)

    def upload(self, local_path: Path, key: str) -> str:
        target = self.root / key.lstrip("/")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, target)
        except OSError as e:
            raise PublishError(f"Storing {local_path} as {key} failed: {e}") from e
        return target.resolve().as_uri()
