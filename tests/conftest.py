"""Shared fixtures for kmod_builder tests."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import httpx
import pytest

from kmod_builder.config import Settings

S3_NS = "http://s3.amazonaws.com/doc/2006-03-01/"
FILES_URL = "https://files.example.com"
BUCKET = "resin-production-img-cloudformation"
LISTING_URL = f"https://{BUCKET}.s3.amazonaws.com/"


def s3_page(keys: list[str], next_token: str | None = None) -> str:
    """Render a ListObjectsV2 result page."""
    contents = "".join(f"<Contents><Key>{k}</Key><Size>1</Size></Contents>" for k in keys)
    truncated = "true" if next_token else "false"
    token = (
        f"<NextContinuationToken>{next_token}</NextContinuationToken>"
        if next_token
        else ""
    )
    return (
        f'<?xml version="1.0" encoding="UTF-8"?>'
        f'<ListBucketResult xmlns="{S3_NS}"><Name>{BUCKET}</Name>'
        f"<IsTruncated>{truncated}</IsTruncated>{token}{contents}</ListBucketResult>"
    )


def listing_handler(keys: list[str]):
    """Build a respx side effect serving keys filtered by the prefix param."""

    def handler(request: httpx.Request) -> httpx.Response:
        prefix = request.url.params.get("prefix", "")
        matching = [k for k in keys if k.startswith(prefix)]
        return httpx.Response(200, text=s3_page(matching))

    return handler


def make_tar_gz(path: Path, members: dict[str, bytes | None]) -> Path:
    """Write a .tar.gz archive; None values become directories."""
    with tarfile.open(path, "w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name=name)
            if data is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))
    return path


def tar_gz_bytes(members: dict[str, bytes | None]) -> bytes:
    """Return the bytes of a .tar.gz archive."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name=name)
            if data is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at test endpoints and tmp_path directories."""
    return Settings(
        files_url=FILES_URL,
        bucket=BUCKET,
        kernel_src_root=tmp_path / "src",
        workarounds_script=tmp_path / "no-such-hook.sh",
        tmp_dir=tmp_path / "scratch",
        kernel_git_source="https://git.example.com/linux.git",
    )
