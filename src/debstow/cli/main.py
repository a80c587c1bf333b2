"""
Main CLI entry point for debstow.

This module provides the Click-based command-line interface for debstow.
"""

import json
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import click

from debstow import __version__
from debstow.apt.mirror import Mirror
from debstow.apt.publisher import RepositoryPublisher
from debstow.cli.common import (
    CONTEXT_SETTINGS,
    build_publisher,
    build_store,
    fail,
    publish_options,
    repository_options,
    resolve_repository,
)
from debstow.cli.lock_commands import create_lock_group
from debstow.core.config import (
    VISIBILITY_ACLS,
    GlobalConfig,
    SigningConfig,
    StorageConfig,
    load_config,
)
from debstow.core.downloader import DownloadManager
from debstow.core.errors import DebstowError
from debstow.core.output import OutputLevel, PublishOutputter, setup_logging


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (default: /etc/debstow/config.yaml, or $DEBSTOW_CONFIG)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Only report errors")
@click.option("--bucket", "-b", default=None, help="S3 bucket holding the repository")
@click.option("--prefix", default=None, help="Path prefix inside the bucket")
@click.option("--endpoint", default=None, help="URL of the S3 API endpoint")
@click.option("--region", default=None, help="S3 region")
@click.option(
    "--visibility",
    type=click.Choice(list(VISIBILITY_ACLS)),
    default=None,
    help="Access policy for uploaded objects",
)
@click.option("--encryption/--no-encryption", default=None, help="Use S3 server side encryption")
@click.option("--local-path", type=click.Path(path_type=Path), default=None, help="Publish into a local directory instead of S3")
@click.option("--sign", default=None, help="GPG key ID used to sign the Release file")
@click.option("--gpg-options", default=None, help="Additional command line options passed to gpg")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: bool,
    quiet: bool,
    bucket: Optional[str],
    prefix: Optional[str],
    endpoint: Optional[str],
    region: Optional[str],
    visibility: Optional[str],
    encryption: Optional[bool],
    local_path: Optional[Path],
    sign: Optional[str],
    gpg_options: Optional[str],
) -> None:
    """debstow - APT repositories on S3 and other object stores."""
    ctx.ensure_object(dict)

    level = OutputLevel.NORMAL
    if quiet:
        level = OutputLevel.QUIET
    elif verbose:
        level = OutputLevel.VERBOSE
    setup_logging(level)
    ctx.obj["output"] = PublishOutputter(level)

    # Load configuration
    try:
        global_config = load_config(config)
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    except ValueError as e:
        # YAML syntax error or validation error
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    storage_update = {
        "bucket": bucket,
        "prefix": prefix,
        "endpoint": endpoint,
        "region": region,
        "visibility": visibility,
        "encryption": encryption,
    }
    if local_path is not None:
        storage_update["backend"] = "local"
        storage_update["local_path"] = str(local_path)
    signing_update = {"key": sign, "gpg_options": gpg_options}

    try:
        global_config.storage = StorageConfig(
            **{
                **global_config.storage.model_dump(),
                **{k: v for k, v in storage_update.items() if v is not None},
            }
        )
        global_config.signing = SigningConfig(
            **{
                **global_config.signing.model_dump(),
                **{k: v for k, v in signing_update.items() if v is not None},
            }
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    ctx.obj["config"] = global_config


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@repository_options
@publish_options
@click.option("--arch", "-a", default=None, help="Architecture of the packages (default: from the package)")
@click.option(
    "--preserve-versions/--no-preserve-versions",
    default=None,
    help="Keep other versions of a package when uploading one",
)
@click.pass_context
def upload(
    ctx: click.Context,
    files: tuple[Path, ...],
    codename: Optional[str],
    component: Optional[str],
    section: Optional[str],
    origin: Optional[str],
    suite: Optional[str],
    cache_control: Optional[str],
    lock: Optional[bool],
    fail_if_exists: Optional[bool],
    skip_package_upload: Optional[bool],
    arch: Optional[str],
    preserve_versions: Optional[bool],
) -> None:
    """Upload .deb files and update the repository indexes."""
    output: PublishOutputter = ctx.obj["output"]
    repository = resolve_repository(
        ctx.obj["config"],
        codename,
        component,
        section,
        origin,
        suite,
        cache_control,
        fail_if_exists=fail_if_exists,
        skip_package_upload=skip_package_upload,
        preserve_versions=preserve_versions,
    )

    publisher = build_publisher(ctx, repository, lock)
    output.header(
        "upload",
        publisher.store.describe(),
        codename=repository.codename,
        component=repository.component,
    )

    try:
        result = publisher.upload(list(files), architecture=arch)
    except DebstowError as e:
        fail(ctx, f"Uploading failed because: {e}")

    output.success(f"Uploaded {len(result.packages)} package(s)")


@cli.command()
@click.argument("package")
@repository_options
@click.option("--lock/--no-lock", "lock", default=None, help="Lock the repository during the update")
@click.option("--arch", "-a", default=None, help="Architecture to delete from (default: all)")
@click.option(
    "--versions",
    "-V",
    multiple=True,
    help="Only delete these versions (bare, version-iteration or full version); repeatable",
)
@click.pass_context
def delete(
    ctx: click.Context,
    package: str,
    codename: Optional[str],
    component: Optional[str],
    section: Optional[str],
    origin: Optional[str],
    suite: Optional[str],
    cache_control: Optional[str],
    lock: Optional[bool],
    arch: Optional[str],
    versions: tuple[str, ...],
) -> None:
    """Remove a package from the repository indexes."""
    output: PublishOutputter = ctx.obj["output"]
    repository = resolve_repository(
        ctx.obj["config"], codename, component, section, origin, suite, cache_control
    )

    publisher = build_publisher(ctx, repository, lock)
    output.header("delete", publisher.store.describe(), package=package)

    try:
        result = publisher.delete(package, list(versions) or None, architecture=arch)
    except DebstowError as e:
        fail(ctx, str(e))

    output.success(f"Deleted {len(result.packages)} package(s)")


@cli.command("list")
@repository_options
@click.option("--arch", "-a", default=None, help="Only list this architecture")
@click.option("--format", "output_format", type=click.Choice(["table", "json", "long"]),
              default="table", help="Output format")
@click.pass_context
def list_command(
    ctx: click.Context,
    codename: Optional[str],
    component: Optional[str],
    section: Optional[str],
    origin: Optional[str],
    suite: Optional[str],
    cache_control: Optional[str],
    arch: Optional[str],
    output_format: str,
) -> None:
    """List packages in the repository."""
    repository = resolve_repository(
        ctx.obj["config"], codename, component, section, origin, suite, cache_control
    )
    publisher = RepositoryPublisher(build_store(ctx), repository, output=ctx.obj["output"])

    try:
        listing = publisher.list_packages(arch)
    except DebstowError as e:
        fail(ctx, str(e))

    if output_format == "json":
        result = [
            {
                "name": pkg.name,
                "version": pkg.full_version,
                "architecture": architecture,
                "filename": pkg.url_filename(repository.codename),
                "size": pkg.size,
                "sha256": pkg.sha256,
            }
            for architecture, packages in listing.items()
            for pkg in packages
        ]
        click.echo(json.dumps(result, indent=2))
        return

    if output_format == "long":
        for packages in listing.values():
            for pkg in packages:
                click.echo(pkg.generate(repository.codename))
        return

    rows = [
        (pkg.name or "", pkg.full_version or "", architecture)
        for architecture, packages in listing.items()
        for pkg in packages
    ]
    if not rows:
        click.echo("No packages found.")
        return

    # Calculate column widths based on longest entry
    name_width = max(len("Package"), max(len(row[0]) for row in rows))
    version_width = max(len("Version"), max(len(row[1]) for row in rows))

    header = f"{'Package':<{name_width}} {'Version':<{version_width}} Architecture"
    click.echo(header)
    click.echo("-" * len(header))
    for name, version, architecture in rows:
        click.echo(f"{name:<{name_width}} {version:<{version_width}} {architecture}")

    click.echo()
    click.echo(f"Total: {len(rows)} package(s)")


@cli.command()
@click.argument("url")
@repository_options
@publish_options
@click.option("--arch", "-a", default=None, help="Only mirror this architecture (and all)")
@click.option(
    "--preserve-versions/--no-preserve-versions",
    default=True,
    help="Keep other versions of a package when adding one",
)
@click.option("--cache-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory to cache downloaded packages (default: temporary)")
@click.pass_context
def mirror(
    ctx: click.Context,
    url: str,
    codename: Optional[str],
    component: Optional[str],
    section: Optional[str],
    origin: Optional[str],
    suite: Optional[str],
    cache_control: Optional[str],
    lock: Optional[bool],
    fail_if_exists: Optional[bool],
    skip_package_upload: Optional[bool],
    arch: Optional[str],
    preserve_versions: bool,
    cache_dir: Optional[Path],
) -> None:
    """Mirror the packages of an upstream repository.

    URL is the repository root, e.g. https://download.docker.com/linux/ubuntu
    """
    config: GlobalConfig = ctx.obj["config"]
    output: PublishOutputter = ctx.obj["output"]
    repository = resolve_repository(
        config,
        codename,
        component,
        section,
        origin,
        suite,
        cache_control,
        fail_if_exists=fail_if_exists,
        skip_package_upload=skip_package_upload,
        preserve_versions=preserve_versions,
    )

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        fail(ctx, f"Invalid mirror URL: {url}")

    upstream = Mirror(
        f"{parsed.scheme}://{parsed.netloc}",
        parsed.path,
        cache_dir=cache_dir or (Path(config.download.cache_dir) if config.download.cache_dir else None),
        downloader=DownloadManager(config.download, config.proxy, config.ssl),
        download_config=config.download,
    )

    publisher = build_publisher(ctx, repository, lock)
    output.header("mirror", publisher.store.describe(), source=url, codename=repository.codename)

    try:
        result = publisher.mirror(upstream, architecture=arch)
    except DebstowError as e:
        fail(ctx, f"Mirroring failed because: {e}")

    output.success(f"Mirrored {len(result.packages)} package(s)")


create_lock_group(cli)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
