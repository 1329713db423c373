from __future__ import annotations

import contextlib
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZIP_STORED, ZipFile


def write_bytes(z: ZipFile, arcname: str, data: bytes, stored: bool = True) -> None:
    compress = ZIP_STORED if stored else ZIP_DEFLATED
    z.writestr(arcname, data, compress_type=compress)


def write_text(z: ZipFile, arcname: str, text: str) -> None:
    z.writestr(arcname, text.encode("utf-8"), compress_type=ZIP_DEFLATED)


def read_bytes(z: ZipFile, arcname: str) -> bytes:
    with z.open(arcname, "r") as handle:
        return handle.read()


def exists(z: ZipFile, arcname: str) -> bool:
    try:
        z.getinfo(arcname)
        return True
    except KeyError:
        return False


@contextlib.contextmanager
def atomic_zip(destination: Path) -> Iterator[ZipFile]:
    """Write a zip beside ``destination`` and move it into place only on success."""

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent
    )
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        with ZipFile(tmp_path, "w") as z:
            yield z
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
