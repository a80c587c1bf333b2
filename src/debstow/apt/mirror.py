from __future__ import annotations

"""
Crawler for upstream APT repositories.

Codenames, components and architectures are discovered from the HTML
directory listings of the upstream web server, indexes are fetched over HTTP
and package files are cached locally so they can be published into another
repository.
"""

import gzip
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from urllib.parse import quote

import lxml.html
from lxml import etree

from debstow.apt.manifest import Manifest
from debstow.apt.package import Package
from debstow.apt.release import Release
from debstow.core.config import DownloadConfig
from debstow.core.downloader import DownloadManager
from debstow.core.errors import DebstowError, DigestMismatchError, DownloadError, ParseError

logger = logging.getLogger(__name__)


@dataclass
class ArchitectureData:
    name: str
    manifest: Manifest | None = None


@dataclass
class ComponentData:
    name: str
    architectures: dict[str, ArchitectureData] = field(default_factory=dict)


@dataclass
class CodenameData:
    name: str
    components: dict[str, ComponentData] = field(default_factory=dict)


@dataclass
class RepoData:
    """Tree of an upstream repository plus flattened name lists."""

    target: str
    prefix: str
    codenames: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)
    architectures: list[str] = field(default_factory=list)
    data: dict[str, CodenameData] = field(default_factory=dict)


class Mirror:
    """Upstream repository reachable over HTTP(S)."""

    def __init__(
        self,
        target_repo: str,
        prefix: str | None = None,
        cache_dir: Path | None = None,
        downloader: DownloadManager | None = None,
        download_config: DownloadConfig | None = None,
    ):
        """Initialize mirror.

        Args:
            target_repo: Scheme and host of the upstream (e.g. "https://download.docker.com")
            prefix: Path of the repository on the host (e.g. "linux/ubuntu")
            cache_dir: Directory for downloaded package files (temporary if None)
            downloader: Download manager used for all requests
            download_config: Download settings (checksum verification)
        """
        self.target_repo = target_repo.rstrip("/")
        self.prefix = (prefix or "").strip("/")
        self.download_config = download_config or DownloadConfig()
        self.downloader = downloader or DownloadManager(self.download_config)
        self.cache_dir = (
            Path(cache_dir)
            if cache_dir
            else Path(tempfile.mkdtemp(prefix="debstow-mirror-"))
        )
        self.repo_data = RepoData(target=self.target_repo, prefix=self.prefix)

    def url(self, path: str = "") -> str:
        parts = [self.target_repo]
        if self.prefix:
            parts.append(self.prefix)
        if path:
            parts.append(path.lstrip("/"))
        return "/".join(parts)

    def _list_links(self, path: str) -> list[str]:
        """Link texts of an HTML directory listing; empty on failure."""
        url = self.url(path) + "/"
        logger.debug(f"Reading directory listing {url}")
        try:
            html = self.downloader.fetch(url)
            if not html:
                logger.error(f"No directory listing at {url}")
                return []
            document = lxml.html.fromstring(html)
        except (DownloadError, etree.ParserError) as e:
            logger.error(f"Failed to read directory listing {url}: {e}")
            return []

        links = []
        for anchor in document.iter("a"):
            text = anchor.text_content().strip()
            if text and not text.startswith(".."):
                links.append(text)
        return links

    def retrieve_codenames(self) -> list[str]:
        codenames = [
            link.rstrip("/") for link in self._list_links("dists") if link.endswith("/")
        ]
        logger.debug(f"located {len(codenames)} codenames")
        return codenames

    def retrieve_components(self, codename: str) -> list[str]:
        components = [
            link.rstrip("/")
            for link in self._list_links(f"dists/{codename}")
            if link.endswith("/") and link != "pool/"
        ]
        logger.debug(f"located {len(components)} components")
        return components

    def retrieve_architectures(self, codename: str, component: str) -> list[str]:
        architectures = [
            link.rstrip("/")[len("binary-") :]
            for link in self._list_links(f"dists/{codename}/{component}")
            if link.startswith("binary-")
        ]
        logger.debug(f"located {len(architectures)} architectures")
        return architectures

    def retrieve_release(self, codename: str) -> Release:
        """Fetch and parse the upstream Release of a codename.

        Raises:
            DebstowError: If the upstream has no Release file
        """
        url = self.url(f"dists/{codename}/Release")
        text = self.downloader.fetch_text(url)
        if text is None:
            raise DebstowError(f"No Release file at {url}")

        release = Release.parse_release(text)
        logger.debug(f"located {len(release.components)} components")
        return release

    def retrieve_manifest(self, codename: str, component: str, architecture: str) -> Manifest:
        """Fetch and parse an upstream Packages index (plain or gzip)."""
        base = f"dists/{codename}/{component}/binary-{architecture}"

        content = self.downloader.fetch(self.url(f"{base}/Packages"))
        if content is None:
            compressed = self.downloader.fetch(self.url(f"{base}/Packages.gz"))
            content = gzip.decompress(compressed) if compressed is not None else b""

        manifest = Manifest.parse_packages(content.decode("utf-8", errors="replace"))
        manifest.codename = codename
        manifest.component = component
        manifest.architecture = architecture

        logger.debug(f"located {len(manifest.packages)} packages")
        for package in manifest.packages:
            logger.debug(f"{package.name} => {package.version} => {package.iteration}")
        return manifest

    def crawl_repo(self, codenames: list[str] | None = None) -> RepoData:
        """Discover the codename/component/architecture tree.

        Args:
            codenames: Only crawl these codenames (all discovered ones if None)
        """
        self.repo_data = RepoData(target=self.target_repo, prefix=self.prefix)

        for codename in self.retrieve_codenames():
            if codenames is not None and codename not in codenames:
                continue

            codename_data = CodenameData(name=codename)
            for component in self.retrieve_components(codename):
                component_data = ComponentData(name=component)
                for architecture in self.retrieve_architectures(codename, component):
                    component_data.architectures[architecture] = ArchitectureData(name=architecture)
                codename_data.components[component] = component_data
            self.repo_data.data[codename] = codename_data

        self._flatten()
        return self.repo_data

    def _flatten(self) -> None:
        data = self.repo_data
        for codename_data in data.data.values():
            if codename_data.name not in data.codenames:
                data.codenames.append(codename_data.name)
            for component_data in codename_data.components.values():
                if component_data.name not in data.components:
                    data.components.append(component_data.name)
                for architecture in component_data.architectures:
                    if architecture not in data.architectures:
                        data.architectures.append(architecture)

    def cache_repo(self, codename: str | None = None) -> None:
        """Fetch the indexes of crawled architectures and cache their packages.

        Args:
            codename: Only cache this codename (all crawled ones if None)
        """
        for codename_data in self.repo_data.data.values():
            if codename is not None and codename_data.name != codename:
                continue
            for component_data in codename_data.components.values():
                for arch_data in component_data.architectures.values():
                    manifest = self.retrieve_manifest(
                        codename_data.name, component_data.name, arch_data.name
                    )
                    for package in manifest.packages:
                        self.cache_package(package)
                    arch_data.manifest = manifest

    def cache_package(self, package: Package) -> Path:
        """Download a package file into the cache and verify its digests.

        A file whose digests disagree with the index is discarded and fetched
        once more; the second copy is trusted. Afterwards the package's pool
        path is reset so it is relocated when published.

        Raises:
            ParseError: If the index places the file outside the cache
            DownloadError: If the file cannot be downloaded
        """
        relative = package.url_filename()
        url = self.url(quote(relative))
        dest = self.cache_dir / relative

        root = self.cache_dir.resolve()
        if PurePosixPath(relative).is_absolute() or root not in dest.resolve().parents:
            raise ParseError(f"Refusing to cache {relative} outside of {self.cache_dir}")

        if not dest.exists():
            self.downloader.download_file(url, dest)
        package.filename = str(dest)

        if self.download_config.verify_checksum:
            try:
                package.check_digest(strict=True)
            except DigestMismatchError as e:
                logger.warning(f"{e}; downloading {url} again")
                dest.unlink(missing_ok=True)
                package.clear_digests()
                self.downloader.download_file(url, dest)
                package.check_digest()
        else:
            package.check_digest()

        package.reset_url_filename()
        return dest
