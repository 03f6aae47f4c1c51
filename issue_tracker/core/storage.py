from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import shutil
from typing import BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from .settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    endpoint_url: str
    bucket: str


_logged_config = False


def is_object_backend() -> bool:
    return settings.STORAGE_BACKEND.strip().lower() == "object"


def get_storage_config() -> StorageConfig:
    global _logged_config
    if not is_object_backend():
        raise RuntimeError("Object storage is not enabled")
    if not all([settings.OBJECT_STORAGE_ENDPOINT, settings.OBJECT_STORAGE_BUCKET]):
        raise RuntimeError("Missing object storage configuration")
    cfg = StorageConfig(
        endpoint_url=settings.OBJECT_STORAGE_ENDPOINT or "",
        bucket=(settings.OBJECT_STORAGE_BUCKET or "").strip(),
    )
    if not _logged_config:
        logger.info(
            "Object storage config loaded: endpoint=%s bucket=%s",
            cfg.endpoint_url,
            cfg.bucket,
        )
        _logged_config = True
    return cfg


def get_s3_client():
    cfg = get_storage_config()
    return boto3.client(
        "s3",
        endpoint_url=cfg.endpoint_url,
        config=Config(s3={"addressing_style": "path"}),
    )


def local_path(key: str) -> Path:
    root = Path(settings.LOCAL_UPLOAD_ROOT).resolve()
    path = (root / key).resolve()
    if root not in path.parents:
        raise ValueError(f"Storage key escapes upload root: {key}")
    return path


def save(*, fileobj: BinaryIO, key: str, content_type: str) -> None:
    """Blocking write; call it through ``anyio.to_thread`` from async routes."""
    if is_object_backend():
        cfg = get_storage_config()
        try:
            get_s3_client().upload_fileobj(
                Fileobj=fileobj,
                Bucket=cfg.bucket,
                Key=key,
                ExtraArgs={"ContentType": content_type},
            )
        except ClientError as exc:
            logger.exception("Object storage upload failed: %s", exc)
            raise
        return

    path = local_path(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as out:
        shutil.copyfileobj(fileobj, out)


def delete(*, key: str) -> None:
    if is_object_backend():
        cfg = get_storage_config()
        get_s3_client().delete_object(Bucket=cfg.bucket, Key=key)
        return
    local_path(key).unlink(missing_ok=True)


def get_presigned_get_url(*, key: str, filename: str, content_type: str, expires_in: int = 600) -> str:
    cfg = get_storage_config()
    return get_s3_client().generate_presigned_url(
        ClientMethod="get_object",
        Params={
            "Bucket": cfg.bucket,
            "Key": key,
            "ResponseContentDisposition": f'attachment; filename="{filename}"',
            "ResponseContentType": content_type,
        },
        ExpiresIn=expires_in,
    )
