"""Single-file tar archives for ``put_archive`` uploads."""

import io
import tarfile
import time

from coderunner.sandbox.errors import ArchiveError

FILE_MODE = 0o644


def build_archive(file_name: str, source: str | bytes) -> bytes:
    """Pack ``source`` as the only entry of an uncompressed tar archive.

    Raises:
        ArchiveError: ``file_name`` is unusable or tarfile failed to write.
    """
    if not file_name or file_name.startswith("/") or ".." in file_name.split("/"):
        raise ArchiveError(f"Invalid archive entry name: {file_name!r}", file_name=file_name)

    data = source.encode("utf-8") if isinstance(source, str) else source
    info = tarfile.TarInfo(name=file_name)
    info.size = len(data)
    info.mode = FILE_MODE
    info.mtime = int(time.time())

    buffer = io.BytesIO()
    try:
        with tarfile.open(fileobj=buffer, mode="w") as archive:
            archive.addfile(info, io.BytesIO(data))
    except (tarfile.TarError, OSError) as exc:
        raise ArchiveError(str(exc), file_name=file_name) from exc
    return buffer.getvalue()
