"""Builds the service from config; used by the API, the worker and the tools."""
from functools import lru_cache
from typing import Dict

from transcode import config
from transcode.client import TransloaditClient
from transcode.job_schema import JobSpec
from transcode.processors import ProcessingContext, ProcessorRegistry
from transcode.records import JsonRecordStore
from transcode.service import TranscodeService
from transcode.steps import make_step
from transcode.storage import AzureStorage, GoogleCloudStorage, S3Storage, StorageDescriptor, UrlStorage
from transcode.tasks import JsonTaskQueue

PHOTO = "photo"
THUMBNAIL_SIZES = {"small": 300, "medium": 500, "large": 800}

processors = ProcessorRegistry()


@processors.register(PHOTO, "thumbnails")
def thumbnails(context: ProcessingContext) -> JobSpec:
    import_step = context.import_step()
    versions = {"original": context.graph()}
    for version, size in THUMBNAIL_SIZES.items():
        versions[version] = context.graph().add_step(
            make_step(f"resize_{size}", "/image/resize", use=import_step, width=size, height=size, resize_strategy="fit")
        )
    return context.build(versions)


def build_store() -> StorageDescriptor:
    credentials = config.credentials_for("store")

    if config.STORAGE_BACKEND == "s3":
        return S3Storage("store", bucket=config.S3_BUCKET, region=config.S3_REGION,
                         prefix=config.STORE_PREFIX, credentials=credentials)
    elif config.STORAGE_BACKEND == "gcp":
        return GoogleCloudStorage("store", bucket=config.GCS_BUCKET, prefix=config.STORE_PREFIX,
                                  credentials=credentials)
    elif config.STORAGE_BACKEND == "azure":
        return AzureStorage("store", container=config.AZURE_CONTAINER, connection_string=config.AZURE_CONN_STR,
                            prefix=config.STORE_PREFIX, credentials=credentials)
    else:
        raise RuntimeError(f"Unsupported STORAGE_BACKEND: {config.STORAGE_BACKEND}")


def build_storages() -> Dict[str, StorageDescriptor]:
    return {
        # cached uploads are served by the demo app and imported over HTTP
        "cache": UrlStorage("cache", directory=config.LOCAL_CACHE_DIR, base_url=f"{config.PUBLIC_BASE_URL}/uploads"),
        "store": build_store(),
    }


@lru_cache(maxsize=1)
def build_service() -> TranscodeService:
    key, secret = config.require_auth()
    return TranscodeService(
        client=TransloaditClient(key, secret, api_url=config.TRANSLOADIT_API_URL),
        records=JsonRecordStore(config.LOCAL_RECORDS_FILE),
        storages=build_storages(),
        processors=processors,
        tasks=JsonTaskQueue(config.LOCAL_TASKS_FILE),
        secret=secret,
        notify_url=config.TRANSLOADIT_NOTIFY_URL,
        tracker_options={
            "interval": config.POLL_INTERVAL,
            "backoff": config.POLL_BACKOFF,
            "max_interval": config.POLL_MAX_INTERVAL,
            "timeout": config.POLL_TIMEOUT,
        },
    )
