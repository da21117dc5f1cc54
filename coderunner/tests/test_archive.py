"""Tests for the single-file upload archive."""

import io
import tarfile

import pytest

from coderunner.sandbox.archive import FILE_MODE, build_archive
from coderunner.sandbox.errors import ArchiveError


def _members(archive: bytes):
    with tarfile.open(fileobj=io.BytesIO(archive), mode="r") as tar:
        return [(m, tar.extractfile(m).read()) for m in tar.getmembers()]


class TestBuildArchive:
    """Test build_archive."""

    def test_contains_exactly_one_file(self):
        """Test that the archive holds one regular file with the source."""
        members = _members(build_archive("code.js", "console.log('hi')"))
        assert len(members) == 1
        info, content = members[0]
        assert info.name == "code.js"
        assert info.isfile()
        assert info.size == len(content)
        assert content == b"console.log('hi')"
        assert info.mode == FILE_MODE

    def test_encodes_text_as_utf8(self):
        members = _members(build_archive("code.py", "print('héllo')"))
        assert members[0][1] == "print('héllo')".encode("utf-8")

    def test_accepts_bytes(self):
        members = _members(build_archive("Main.java", b"public class Main {}"))
        assert members[0][0].name == "Main.java"
        assert members[0][1] == b"public class Main {}"

    def test_empty_source(self):
        members = _members(build_archive("code.c", ""))
        assert members[0][0].size == 0

    @pytest.mark.parametrize("name", ["", "/etc/passwd", "../escape.js"])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(ArchiveError):
            build_archive(name, "x")
