# src/publisher/packaging.py — v1
"""Deterministic image layer packaging.

The same artifact must always produce the same bytes, otherwise a rerun for
an already published revision would look like a tag collision. Entries are
sorted and all volatile metadata (mtime, uid/gid, owner names) is zeroed,
and the gzip header carries no timestamp or filename.
"""

from __future__ import annotations

import gzip
import io
import tarfile
from pathlib import Path

_FILE_MODE = 0o644
_EXEC_MODE = 0o755
_DIR_MODE = 0o755


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    if info.isdir():
        info.mode = _DIR_MODE
    elif info.mode & 0o111:
        info.mode = _EXEC_MODE
    else:
        info.mode = _FILE_MODE
    return info


def package_artifact(artifact: Path, prefix: str = "app") -> bytes:
    """Pack a file or directory into a reproducible .tar.gz layer.

    Args:
        artifact: Built artifact (single file or directory tree).
        prefix: Directory inside the layer the artifact is placed under.

    Raises:
        FileNotFoundError: Artifact does not exist.
    """
    artifact = Path(artifact)
    if not artifact.exists():
        raise FileNotFoundError(f"Artifact not found: {artifact}")

    if artifact.is_dir():
        paths = sorted(artifact.rglob("*"))
        entries = [(p, f"{prefix}/{p.relative_to(artifact).as_posix()}") for p in paths]
    else:
        entries = [(artifact, f"{prefix}/{artifact.name}")]

    tar_buf = io.BytesIO()
    with tarfile.open(fileobj=tar_buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path, arcname in entries:
            info = _normalize(tar.gettarinfo(str(path), arcname=arcname))
            if info.isfile():
                with open(path, "rb") as f:
                    tar.addfile(info, f)
            else:
                tar.addfile(info)

    gz_buf = io.BytesIO()
    with gzip.GzipFile(filename="", mode="wb", fileobj=gz_buf, mtime=0) as gz:
        gz.write(tar_buf.getvalue())
    return gz_buf.getvalue()
