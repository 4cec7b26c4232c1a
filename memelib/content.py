"""
Content store — blob files named by their SHA-256 digest.

Identical bytes always land on the same file name, so adding the same
image twice is harmless and every meme referencing it shares one blob.
Files are written to a temporary name in the library directory and
renamed into place, so a failed copy never leaves a partial file under a
digest name.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import stat
import tempfile
from pathlib import Path
from typing import Union

from memelib.errors import asset_errors

logger = logging.getLogger(__name__)

_BLOCK_SIZE = 65536
_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")

PathLike = Union[str, "os.PathLike[str]"]


def file_sha256(path: PathLike) -> str:
    """Compute SHA-256 hex digest of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(_BLOCK_SIZE), b""):
            h.update(block)
    return h.hexdigest()


class ContentStore:
    """Content-addressed file library rooted at *files_dir*."""

    def __init__(self, files_dir: PathLike):
        self.files_dir = Path(files_dir)
        with asset_errors(f"create library directory {self.files_dir}"):
            self.files_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, digest: str) -> Path:
        """Location of the blob for *digest* (which need not exist yet)."""
        if not _DIGEST_RE.match(digest or ""):
            raise ValueError(f"Not a sha256 hex digest: {digest!r}")
        return self.files_dir / digest

    def contains(self, digest: str) -> bool:
        return self.path_for(digest).is_file()

    def add_file(self, source_path: PathLike, delete_after_add: bool = False) -> str:
        """Copy *source_path* into the library and return its digest.

        The source is hashed while it is copied. If *delete_after_add* is
        set the source is removed once the blob is in place; a failure at
        that point still leaves the library copy intact.

        Raises:
            AssetIOError: source missing or unreadable, or the copy, rename
                or delete failed.
        """
        source = Path(source_path)
        h = hashlib.sha256()
        with asset_errors(f"copy {source} into library"):
            fd, tmp_name = tempfile.mkstemp(dir=self.files_dir, prefix=".incoming-")
            try:
                with os.fdopen(fd, "wb") as dst, open(source, "rb") as src:
                    mode = stat.S_IMODE(os.fstat(src.fileno()).st_mode)
                    for block in iter(lambda: src.read(_BLOCK_SIZE), b""):
                        h.update(block)
                        dst.write(block)
                digest = h.hexdigest()
                # mkstemp creates 0600; blobs keep the source's permissions
                os.chmod(tmp_name, mode)
                os.replace(tmp_name, self.files_dir / digest)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise

        logger.info(f"Added {source.name} to library as {digest}")

        if delete_after_add:
            self.remove_source(source, digest)
        return digest

    def is_blob(self, path: PathLike, digest: str) -> bool:
        """True if *path* is the library's own file for *digest*."""
        blob = self.path_for(digest)
        with asset_errors(f"compare {path} with {blob}"):
            return blob.exists() and os.path.samefile(path, blob)

    def remove_source(self, source_path: PathLike, digest: str) -> None:
        """Delete a source file that was added as *digest*.

        A source that is the blob itself is kept; deleting it would drop
        the library's only copy.
        """
        if self.is_blob(source_path, digest):
            logger.warning(f"Not removing {source_path}: it is the stored blob {digest}")
            return
        with asset_errors(f"remove source {source_path}"):
            Path(source_path).unlink()
        logger.debug("Removed source file %s", source_path)

    def read_bytes(self, digest: str) -> bytes:
        """Return the stored bytes for *digest*."""
        path = self.path_for(digest)
        with asset_errors(f"read blob {digest}"):
            return path.read_bytes()


