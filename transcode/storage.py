"""
Storage descriptors.

Each storage we can attach files to knows how to describe itself to
Transloadit: which robot imports a file from it, which robot exports
results into it, and how a result URL maps back to one of its ids. The demo
and the cleanup tasks also use them to upload and delete objects.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

from transcode.errors import BuildError, ConfigurationError, ResultError
from transcode.job_schema import Step
from transcode.steps import make_step

# ------------------------------------------------------------------------------
# CONDITIONAL IMPORTS
# Only the SDK of the configured backend needs to be installed.
# ------------------------------------------------------------------------------

try:
    import boto3
except ImportError:
    boto3 = None

try:
    from google.cloud import storage as gcs
except ImportError:
    gcs = None

try:
    from azure.storage.blob import BlobServiceClient
except ImportError:
    BlobServiceClient = None

logger = logging.getLogger(__name__)

# Transloadit's destination path for export robots; ${file.ext} keeps the
# extension of the processed file.
DEFAULT_PATH = "${unique_prefix}/${file.basename}.${file.ext}"


class StorageDescriptor(ABC):
    def __init__(self, key: str, prefix: Optional[str] = None, credentials: Optional[str] = None):
        self.key = key
        self.prefix = prefix.strip("/") if prefix else None
        self.credentials = credentials

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, prefix={self.prefix!r})"

    # --- Transloadit steps ---

    def import_step(self, file_id: str, name: str = "import", **options: Any) -> Step:
        raise BuildError(f"cannot construct import step from {self!r}")

    def export_step(self, name: str = "export", **options: Any) -> Step:
        raise BuildError(f"cannot construct export step for {self!r}")

    @abstractmethod
    def file_id(self, url: str) -> str:
        """Maps a result URL back to an id in this storage."""

    # --- object operations ---

    @abstractmethod
    def url(self, file_id: str) -> str:
        ...

    def upload(self, content: bytes, name: str, content_type: Optional[str] = None) -> str:
        raise ConfigurationError(f"storage {self.key!r} doesn't accept uploads")

    @abstractmethod
    def delete(self, file_id: str) -> None:
        ...

    # --- helpers ---

    def _path(self, path: str) -> str:
        return "/".join([self.prefix, path]) if self.prefix else path

    def _credentials(self, options: dict) -> dict:
        if "credentials" in options:
            return options
        if not self.credentials:
            raise ConfigurationError(f"credentials not registered for storage {self.key!r}")
        return {**options, "credentials": self.credentials}

    def _id_from_path(self, url: str, container: Optional[str] = None) -> str:
        path = unquote(urlparse(url).path)
        # path-style URLs carry the bucket/container as the first segment
        if container and path.startswith(f"/{container}/"):
            path = path[len(container) + 1:]
        expected = f"/{self.prefix}/" if self.prefix else "/"
        if not path.startswith(expected) or len(path) == len(expected):
            raise ResultError(f"URL path doesn't start with storage prefix: {url}")
        return path[len(expected):]


# ------------------------------------------------------------------------------
# AMAZON S3
# ------------------------------------------------------------------------------

class S3Storage(StorageDescriptor):
    def __init__(self, key: str, bucket: str, region: str = "us-east-1", prefix: Optional[str] = None,
                 credentials: Optional[str] = None, client=None):
        super().__init__(key, prefix=prefix, credentials=credentials)
        self.bucket = bucket
        self.region = region
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not boto3:
                raise RuntimeError("boto3 library is not installed.")
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def import_step(self, file_id: str, name: str = "import", **options: Any) -> Step:
        options = self._credentials({"path": self._path(file_id), **options})
        return make_step(name, "/s3/import", **options)

    def export_step(self, name: str = "export", **options: Any) -> Step:
        path = options.pop("path", DEFAULT_PATH)
        options = self._credentials({"path": self._path(path), **options})
        return make_step(name, "/s3/store", **options)

    def file_id(self, url: str) -> str:
        return self._id_from_path(url, container=self.bucket)

    def url(self, file_id: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{self._path(file_id)}"

    def upload(self, content: bytes, name: str, content_type: Optional[str] = None) -> str:
        extra = {"ContentType": content_type} if content_type else {}
        self.client.put_object(Bucket=self.bucket, Key=self._path(name), Body=content, **extra)
        return name

    def delete(self, file_id: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=self._path(file_id))


# ------------------------------------------------------------------------------
# GOOGLE CLOUD STORAGE
# ------------------------------------------------------------------------------

class GoogleCloudStorage(StorageDescriptor):
    def __init__(self, key: str, bucket: str, prefix: Optional[str] = None,
                 credentials: Optional[str] = None, client=None):
        super().__init__(key, prefix=prefix, credentials=credentials)
        self.bucket = bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not gcs:
                raise RuntimeError("google-cloud-storage library is not installed.")
            self._client = gcs.Client()
        return self._client

    def _blob(self, file_id: str):
        return self.client.bucket(self.bucket).blob(self._path(file_id))

    def import_step(self, file_id: str, name: str = "import", **options: Any) -> Step:
        options = self._credentials({"path": self._path(file_id), **options})
        return make_step(name, "/google/import", **options)

    def export_step(self, name: str = "export", **options: Any) -> Step:
        path = options.pop("path", DEFAULT_PATH)
        options = self._credentials({"path": self._path(path), **options})
        return make_step(name, "/google/store", **options)

    def file_id(self, url: str) -> str:
        return self._id_from_path(url, container=self.bucket)

    def url(self, file_id: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket}/{self._path(file_id)}"

    def upload(self, content: bytes, name: str, content_type: Optional[str] = None) -> str:
        self._blob(name).upload_from_string(content, content_type=content_type or "application/octet-stream")
        return name

    def delete(self, file_id: str) -> None:
        self._blob(file_id).delete()


# ------------------------------------------------------------------------------
# AZURE BLOB STORAGE
# ------------------------------------------------------------------------------

class AzureStorage(StorageDescriptor):
    def __init__(self, key: str, container: str, connection_string: Optional[str] = None,
                 prefix: Optional[str] = None, credentials: Optional[str] = None, client=None):
        super().__init__(key, prefix=prefix, credentials=credentials)
        self.container = container
        self.connection_string = connection_string
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not BlobServiceClient:
                raise RuntimeError("azure-storage-blob library is not installed.")
            if not self.connection_string:
                raise ConfigurationError("AZURE_STORAGE_CONNECTION_STRING env var is missing.")
            self._client = BlobServiceClient.from_connection_string(self.connection_string)
        return self._client

    def _blob_client(self, file_id: str):
        return self.client.get_container_client(self.container).get_blob_client(self._path(file_id))

    def import_step(self, file_id: str, name: str = "import", **options: Any) -> Step:
        options = self._credentials({"path": self._path(file_id), **options})
        return make_step(name, "/azure/import", **options)

    def export_step(self, name: str = "export", **options: Any) -> Step:
        path = options.pop("path", DEFAULT_PATH)
        options = self._credentials({"path": self._path(path), **options})
        return make_step(name, "/azure/store", **options)

    def file_id(self, url: str) -> str:
        return self._id_from_path(url, container=self.container)

    def url(self, file_id: str) -> str:
        return self._blob_client(file_id).url

    def upload(self, content: bytes, name: str, content_type: Optional[str] = None) -> str:
        self._blob_client(name).upload_blob(content, overwrite=True)
        return name

    def delete(self, file_id: str) -> None:
        self._blob_client(file_id).delete_blob()


# ------------------------------------------------------------------------------
# PLAIN URLS
# Ids are the URLs themselves. With a directory and base URL the storage also
# accepts uploads, which the demo serves over HTTP so Transloadit can import
# them.
# ------------------------------------------------------------------------------

class UrlStorage(StorageDescriptor):
    def __init__(self, key: str, directory: Optional[Path] = None, base_url: Optional[str] = None):
        super().__init__(key)
        self.directory = Path(directory) if directory else None
        self.base_url = base_url.rstrip("/") if base_url else None

    def import_step(self, file_id: str, name: str = "import", **options: Any) -> Step:
        uri = urlparse(file_id)
        if uri.scheme in ("http", "https"):
            return make_step(name, "/http/import", **{"url": file_id, **options})
        if uri.scheme == "ftp":
            ftp_options = {
                "host": uri.hostname,
                "user": unquote(uri.username) if uri.username else None,
                "password": unquote(uri.password) if uri.password else None,
                "path": uri.path.lstrip("/"),
            }
            ftp_options = {k: v for k, v in ftp_options.items() if v is not None}
            return make_step(name, "/ftp/import", **{**ftp_options, **options})
        raise BuildError(f"cannot construct import step from {file_id!r}")

    def file_id(self, url: str) -> str:
        return url

    def url(self, file_id: str) -> str:
        return file_id

    def _local_path(self, file_id: str) -> Optional[Path]:
        if not self.directory or not self.base_url or not file_id.startswith(self.base_url + "/"):
            return None
        return self.directory / file_id[len(self.base_url) + 1:]

    def upload(self, content: bytes, name: str, content_type: Optional[str] = None) -> str:
        if not self.directory or not self.base_url:
            raise ConfigurationError(f"storage {self.key!r} needs a directory and base_url to accept uploads")
        path = self.directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return f"{self.base_url}/{name}"

    def delete(self, file_id: str) -> None:
        path = self._local_path(file_id)
        if path is None:
            logger.info("not deleting remote url %s", file_id)
            return
        path.unlink(missing_ok=True)


# ------------------------------------------------------------------------------
# YOUTUBE
# ------------------------------------------------------------------------------

class YouTubeStorage(StorageDescriptor):
    def export_step(self, name: str = "export", **options: Any) -> Step:
        return make_step(name, "/youtube/store", **self._credentials(options))

    def file_id(self, url: str) -> str:
        return url

    def url(self, file_id: str) -> str:
        return file_id

    def delete(self, file_id: str) -> None:
        logger.warning("cannot delete YouTube video %s, remove it manually", file_id)
