import io
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image, UnidentifiedImageError

from transcode.job_schema import UploadedFileRef
from transcode.storage import StorageDescriptor


class NotAnImage(ValueError):
    pass


def image_metadata(content: bytes, filename: str, content_type: Optional[str] = None) -> Dict[str, Any]:
    """Basic metadata of an uploaded image, dimensions read with Pillow."""
    metadata: Dict[str, Any] = {
        "filename": filename,
        "size": len(content),
        "mime_type": content_type,
    }
    try:
        with Image.open(io.BytesIO(content)) as img:
            metadata["width"], metadata["height"] = img.size
            metadata["mime_type"] = Image.MIME.get(img.format, content_type)
    except UnidentifiedImageError as e:
        raise NotAnImage(f"{filename} is not an image") from e
    return metadata


def cache_upload(cache: StorageDescriptor, content: bytes, filename: str,
                 content_type: Optional[str] = None) -> UploadedFileRef:
    """Stores the upload in the cache storage under a random name."""
    metadata = image_metadata(content, filename, content_type)
    name = f"{uuid.uuid4().hex}{Path(filename).suffix.lower()}"
    file_id = cache.upload(content, name, content_type=metadata["mime_type"])
    return UploadedFileRef(id=file_id, storage=cache.key, metadata=metadata)


def file_url(data: Any, storages: Dict[str, StorageDescriptor]) -> Optional[str]:
    if not isinstance(data, dict) or data.get("storage") not in storages:
        return None
    return storages[data["storage"]].url(data["id"])
