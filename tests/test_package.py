"""Tests for the Package model."""

import hashlib
import time

import pytest
from conftest import DISCOURSE_STANZA, EXPECTED_DESCRIPTION

from debstow.apt.package import Package, default_maintainer
from debstow.core.errors import DigestMismatchError, ParseError


class TestParseString:
    """Tests for building packages from control stanzas."""

    def test_creates_package_with_right_attributes(self):
        package = Package.parse_string(DISCOURSE_STANZA)

        assert package.name == "discourse"
        assert package.version == "0.9.8.3"
        assert package.epoch is None
        assert package.iteration == "1396474125.12e4179.wheezy"
        assert package.full_version == "0.9.8.3-1396474125.12e4179.wheezy"
        assert package.description == EXPECTED_DESCRIPTION

    def test_index_fields(self):
        package = Package.parse_string(DISCOURSE_STANZA)

        assert package.size == 58695496
        assert package.md5 == "6a8e7bd7b9e8d5a0cb0f66c2b2d2e6c1"
        assert package.sha256.startswith("5a7f4b5b")
        assert package.sha512 is None
        assert package.url_filename() == (
            "pool/d/di/discourse_0.9.8.3-1396474125.12e4179.wheezy_amd64.deb"
        )
        assert package.dependencies == ["ruby1.9.1 (>= 1.9.3)", "libpq5", "nodejs"]
        assert package.category == "default"
        assert package.url == "http://www.discourse.org/"

    def test_sha512_does_not_replace_sha256(self):
        stanza = "Package: foo\nVersion: 1.0\nSHA256: aaa\nSHA512: bbb\n"

        package = Package.parse_string(stanza)

        assert package.sha256 == "aaa"
        assert package.sha512 == "bbb"

    def test_filename_is_percent_decoded(self):
        stanza = "Package: foo\nVersion: 1:1.0\nFilename: pool/f/fo/foo_1%3a1.0_all.deb\n"

        package = Package.parse_string(stanza)

        assert package.url_filename("stable") == "pool/f/fo/foo_1:1.0_all.deb"

    def test_extension_fields_are_kept(self):
        stanza = "Package: foo\nVersion: 1.0\nXB-Custom-Field: yes\nX-Other: 1\nBuilt-Using: gcc\n"

        package = Package.parse_string(stanza)

        assert package.attributes == {"Custom-Field": "yes", "Other": "1", "Built-Using": "gcc"}

    def test_invalid_size(self):
        with pytest.raises(ParseError):
            Package.parse_string("Package: foo\nVersion: 1.0\nSize: big\n")

    def test_missing_version(self):
        with pytest.raises(ParseError):
            Package.parse_string("Package: foo\nArchitecture: amd64\n")

    def test_missing_name(self):
        with pytest.raises(ParseError):
            Package.parse_string("Version: 1.0\nArchitecture: amd64\n")


class TestFullVersion:
    """Tests for full_version composition."""

    def test_none_if_nothing_set(self):
        assert Package().full_version is None

    def test_version_only(self):
        assert Package(version="0.9.8").full_version == "0.9.8"

    def test_epoch_and_version(self):
        epoch = int(time.time())
        assert Package(version="0.9.8", epoch=epoch).full_version == f"{epoch}:0.9.8"

    def test_version_and_iteration(self):
        assert Package(version="0.9.8", iteration="2").full_version == "0.9.8-2"

    def test_epoch_version_and_iteration(self):
        epoch = int(time.time())
        package = Package(version="0.9.8", iteration="2", epoch=epoch)
        assert package.full_version == f"{epoch}:0.9.8-2"


class TestPoolPath:
    """Tests for safe names and pool paths."""

    def test_safe_name_replaces_unsafe_characters(self):
        package = Package(name="foo+bar", version="1.0~rc1", iteration="1", architecture="amd64")

        assert package.safe_name == "foo-bar_1.0-rc1-1_amd64.deb"

    def test_safe_url_path(self):
        package = Package(name="hello", version="1.0", iteration="1", architecture="amd64")

        assert package.safe_url_path() == "pool/h/he/hello_1.0-1_amd64.deb"
        assert package.safe_url_path("stable") == "pool/stable/h/he/hello_1.0-1_amd64.deb"

    def test_url_filename_is_cached(self):
        package = Package(name="hello", version="1.0", iteration="1", architecture="amd64")

        assert package.url_filename("stable") == "pool/stable/h/he/hello_1.0-1_amd64.deb"
        # First computation wins
        assert package.url_filename("other") == "pool/stable/h/he/hello_1.0-1_amd64.deb"

    def test_reset_url_filename(self):
        package = Package(name="hello", version="1.0", iteration="1", architecture="amd64")
        package.set_url_filename("pool/main/h/hello/hello_1.0-1_amd64.deb")

        assert package.url_filename("stable") == "pool/main/h/hello/hello_1.0-1_amd64.deb"

        package.reset_url_filename()

        assert package.url_filename("stable") == "pool/stable/h/he/hello_1.0-1_amd64.deb"


class TestGenerate:
    """Tests for rendering packages as stanzas."""

    def test_round_trip(self):
        package = Package.parse_string(DISCOURSE_STANZA)

        reparsed = Package.parse_string(package.generate())

        assert reparsed.name == package.name
        assert reparsed.epoch == package.epoch
        assert reparsed.version == package.version
        assert reparsed.iteration == package.iteration
        assert reparsed.description == EXPECTED_DESCRIPTION
        assert reparsed.dependencies == package.dependencies
        assert reparsed.url_filename() == package.url_filename()
        assert reparsed.size == package.size

    def test_field_order(self):
        package = Package(
            name="hello",
            version="1.0",
            iteration="1",
            architecture="amd64",
            maintainer="Test <test@example.com>",
            description="Hello",
            attributes={"Custom": "value"},
        )

        keys = [line.split(":", 1)[0] for line in package.generate("stable").splitlines()]

        assert keys == [
            "Package",
            "Version",
            "License",
            "Vendor",
            "Architecture",
            "Maintainer",
            "Section",
            "Filename",
            "Description",
            "Custom",
        ]

    def test_dependency_normalization(self):
        package = Package(
            name="hello",
            version="1.0",
            dependencies=["Foo_Bar > 2", "baz (!= 1.0)", "qux (~> 1.2)"],
        )

        stanza = Package.parse_string(package.generate())

        assert stanza.dependencies == ["foo-bar (>> 2)", "qux (>= 1.2)", "qux (<< 2.0)"]
        assert stanza.conflicts == "baz (= 1.0)"

    def test_stanza_ends_with_newline(self):
        assert Package(name="a", version="1").generate().endswith("\n")


class TestParseFile:
    """Tests for reading .deb files."""

    def test_parse_file(self, build_deb):
        path = build_deb(name="hello", version="2:1.0-3", architecture="amd64", depends="libc6 (>= 2.31)")

        package = Package.parse_file(path)

        assert package.name == "hello"
        assert package.epoch == 2
        assert package.full_version == "2:1.0-3"
        assert package.architecture == "amd64"
        assert package.dependencies == ["libc6 (>= 2.31)"]
        assert package.filename == str(path)
        assert package.size == path.stat().st_size
        assert package.sha256 == hashlib.sha256(path.read_bytes()).hexdigest()
        assert package.sha512 == hashlib.sha512(path.read_bytes()).hexdigest()


class TestCheckDigest:
    """Tests for digest reconciliation."""

    def test_adopts_missing_digests(self, build_deb):
        path = build_deb()
        package = Package(name="hello", version="1.0", filename=str(path))

        mismatches = package.check_digest()

        assert mismatches == {}
        assert package.md5 == hashlib.md5(path.read_bytes()).hexdigest()

    def test_repair_mode_overwrites_mismatches(self, build_deb):
        path = build_deb()
        actual = hashlib.sha256(path.read_bytes()).hexdigest()
        package = Package(name="hello", version="1.0", filename=str(path), sha256="bogus")

        mismatches = package.check_digest()

        assert mismatches == {"sha256": ("bogus", actual)}
        assert package.sha256 == actual

    def test_strict_mode_raises(self, build_deb):
        path = build_deb()
        package = Package(name="hello", version="1.0", filename=str(path), size=1, md5="bogus")

        with pytest.raises(DigestMismatchError) as excinfo:
            package.check_digest(strict=True)

        assert set(excinfo.value.mismatches) == {"size", "md5"}
        # Nothing was changed
        assert package.size == 1
        assert package.md5 == "bogus"
        assert package.sha256 is None

    def test_requires_local_file(self):
        with pytest.raises(ValueError):
            Package(name="hello").check_digest()

    def test_clear_digests(self):
        package = Package(name="hello", size=1, md5="a", sha1="b", sha256="c", sha512="d")

        package.clear_digests()

        assert (package.size, package.md5, package.sha1, package.sha256, package.sha512) == (
            None,
            None,
            None,
            None,
            None,
        )


def test_default_maintainer_from_environment(monkeypatch):
    monkeypatch.setenv("DEBFULLNAME", "Jane Doe")
    monkeypatch.setenv("DEBEMAIL", "jane@example.com")

    assert default_maintainer() == "Jane Doe <jane@example.com>"
    assert Package().maintainer == "Jane Doe <jane@example.com>"


def test_default_maintainer_fallback(monkeypatch):
    monkeypatch.delenv("DEBFULLNAME", raising=False)
    monkeypatch.setenv("USER", "builder")
    monkeypatch.setattr("debstow.apt.package.socket.gethostname", lambda: "buildhost")

    assert default_maintainer() == "<builder@buildhost>"
