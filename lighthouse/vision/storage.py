"""
Persistence of image descriptions, one folder per identity.

Layout under the data directory:

    <data_dir>/<description id>/
        description.npz   # id, keypoints, descriptors, histogram, optional frame
        voice-label.wav   # voice label, owned by the recorder

Records are numpy ``.npz`` archives loaded with ``allow_pickle=False``.
Writes go to a temporary sibling first and are moved into place with
``os.replace``, so a crash mid-write never leaves a half-written record
under the final name.
"""

from __future__ import annotations

import logging
import os
import zipfile
from enum import Enum
from pathlib import Path

import numpy as np

from lighthouse.vision.description import DESCRIPTOR_WIDTH, Description
from lighthouse.vision.errors import CorruptRecordError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class Asset(Enum):
    """Files stored alongside a description, keyed by the same identity."""

    # Main binary data (id, keypoints, descriptors, histogram, frame).
    DATA = "description.npz"
    # Voice label recorded by the user.
    VOICE_LABEL = "voice-label.wav"


def ensure_dir(path: str | Path) -> Path:
    """Create a directory (and parents) if it does not exist."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def list_folders(root: str | Path) -> list[Path]:
    """Return the immediate subfolders of ``root`` in a stable order."""
    root = Path(root)
    if not root.is_dir():
        return []
    return sorted(p for p in root.iterdir() if p.is_dir())


def folder_for(root: str | Path, description_id: str) -> Path:
    return Path(root) / description_id


def asset_path(root: str | Path, description_id: str, asset: Asset) -> Path:
    """Full path of one of a description's assets."""
    return folder_for(root, description_id) / asset.value


def save(description: Description, folder: str | Path) -> Path:
    """Write a description record into ``folder``.

    Returns the final record path. ``OSError`` propagates to the caller.
    """
    folder = ensure_dir(folder)
    target = folder / Asset.DATA.value
    tmp = folder / (Asset.DATA.value + ".tmp")

    arrays: dict[str, np.ndarray] = {
        "version": np.array(FORMAT_VERSION, dtype=np.int32),
        "id": np.array(description.id),
        "created_at": np.array(description.created_at),
        "keypoints": description.keypoints,
        "descriptors": description.descriptors,
        "histogram": description.histogram,
    }
    if description.source_image is not None:
        arrays["source_image"] = description.source_image

    try:
        # A file handle keeps numpy from appending ".npz" to the temp name.
        with open(tmp, "wb") as f:
            np.savez(f, **arrays)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise

    logger.debug("Saved description %s to %s", description.id, target)
    return target


def load(path: str | Path) -> Description:
    """Read a description from a record file or its identity folder.

    Raises:
        CorruptRecordError: the record is missing, truncated or malformed.
    """
    path = Path(path)
    if path.is_dir():
        path = path / Asset.DATA.value
    if not path.is_file():
        raise CorruptRecordError(path, "record file missing")

    try:
        with np.load(path, allow_pickle=False) as data:
            version = int(data["version"])
            if version != FORMAT_VERSION:
                raise CorruptRecordError(path, f"unsupported format version {version}")
            descriptors = data["descriptors"]
            if descriptors.ndim != 2 or descriptors.shape[1] != DESCRIPTOR_WIDTH:
                raise CorruptRecordError(
                    path, f"descriptor shape {descriptors.shape}, expected (N, {DESCRIPTOR_WIDTH})"
                )
            source_image = data["source_image"] if "source_image" in data.files else None
            return Description(
                id=str(data["id"]),
                keypoints=data["keypoints"],
                descriptors=descriptors,
                histogram=data["histogram"],
                source_image=source_image,
                created_at=str(data["created_at"]),
            )
    except CorruptRecordError:
        raise
    except (
        OSError, EOFError, AttributeError, KeyError, ValueError, TypeError, zipfile.BadZipFile
    ) as e:
        raise CorruptRecordError(path, str(e) or type(e).__name__) from e
