"""
Content hashing and the cheap size/mtime change heuristic.
"""
import asyncio
import hashlib
from pathlib import Path

from ...config import HASH_CHUNK_SIZE, MTIME_TOLERANCE_S
from .models import Asset, DiscoveredFile


def compute_file_hash(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """SHA-256 over the full file content, lowercase hex."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


async def acompute_file_hash(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    return await asyncio.to_thread(compute_file_hash, path, chunk_size)


def has_file_changed(asset: Asset, file: DiscoveredFile, tolerance: float = MTIME_TOLERANCE_S) -> bool:
    """True when size differs or the modified time drifted beyond `tolerance` seconds."""
    if int(asset.size) != int(file.size):
        return True
    return abs(float(asset.modified_date) - float(file.modified)) > float(tolerance)
