"""Tests for reading control data from .deb files."""

import gzip

import pytest
from conftest import _ar_member, _tar, control_text, write_deb

from debstow.apt.debfile import extract_control
from debstow.core.errors import ParseError


@pytest.mark.parametrize("compression", ["gz", "xz", "zst"])
def test_extract_control(tmp_path, compression):
    """Test control extraction for every control.tar compression."""
    control = control_text("hello", "1.0-1", "amd64")
    path = write_deb(tmp_path / "hello.deb", control, compression)

    assert extract_control(path) == control


def test_not_an_ar_archive(tmp_path):
    """Test files without the ar magic are rejected."""
    path = tmp_path / "bogus.deb"
    path.write_bytes(b"PK\x03\x04 not a deb")

    with pytest.raises(ParseError, match="bogus.deb"):
        extract_control(path)


def test_missing_control_member(tmp_path):
    """Test archives without control.tar are rejected."""
    path = tmp_path / "empty.deb"
    path.write_bytes(b"!<arch>\n" + _ar_member("debian-binary", b"2.0\n"))

    with pytest.raises(ParseError):
        extract_control(path)


def test_missing_control_file(tmp_path):
    """Test a control archive without a control file."""
    path = tmp_path / "nocontrol.deb"
    path.write_bytes(
        b"!<arch>\n"
        + _ar_member("debian-binary", b"2.0\n")
        + _ar_member("control.tar.gz", gzip.compress(_tar({"./md5sums": b""})))
        + _ar_member("data.tar.gz", gzip.compress(_tar({})))
    )

    with pytest.raises(ParseError, match="no control file"):
        extract_control(path)


def test_corrupt_control_member(tmp_path):
    """Test undecodable control archives are reported as parse errors."""
    path = tmp_path / "corrupt.deb"
    path.write_bytes(
        b"!<arch>\n"
        + _ar_member("debian-binary", b"2.0\n")
        + _ar_member("control.tar.gz", b"not gzip data")
        + _ar_member("data.tar.gz", b"not gzip data")
    )

    with pytest.raises(ParseError):
        extract_control(path)
