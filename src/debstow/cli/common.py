"""Helpers shared by the command modules."""

from typing import Optional

import click

from debstow.apt.publisher import RepositoryPublisher
from debstow.core.config import GlobalConfig, RepositoryConfig
from debstow.core.signing import create_signer
from debstow.core.storage import ObjectStore, create_object_store

# Click context settings to enable -h as alias for --help
CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def repository_options(func):
    """Options selecting the target codename/component."""
    options = [
        click.option("--codename", "-c", default=None, help="Codename of the APT repository (default: stable)"),
        click.option("--component", "-m", default=None, help="Component of the APT repository (default: main)"),
        click.option("--section", "-s", default=None, hidden=True),
        click.option("--origin", "-o", default=None, help="Origin to use in the Release file"),
        click.option("--suite", default=None, help="Suite to use in the Release file"),
        click.option("--cache-control", "-C", default=None, help="Cache-Control header for stored objects"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def publish_options(func):
    """Options controlling how packages are published."""
    options = [
        click.option("--lock/--no-lock", "lock", default=None, help="Lock the repository during the update"),
        click.option(
            "--fail-if-exists/--no-fail-if-exists",
            default=None,
            help="Fail if a package with the same name and version or pool file exists with different content",
        ),
        click.option(
            "--skip-package-upload/--no-skip-package-upload",
            default=None,
            help="Only update the indexes (packages are hosted elsewhere)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def resolve_repository(
    config: GlobalConfig,
    codename: Optional[str] = None,
    component: Optional[str] = None,
    section: Optional[str] = None,
    origin: Optional[str] = None,
    suite: Optional[str] = None,
    cache_control: Optional[str] = None,
    **overrides,
) -> RepositoryConfig:
    """Apply command line options to the configured repository."""
    if section:
        click.echo(
            "===> WARNING: The --section/-s argument is deprecated, please use --component/-m.",
            err=True,
        )
        component = component or section

    values = {
        "codename": codename,
        "component": component,
        "origin": origin,
        "suite": suite,
        "cache_control": cache_control,
        **overrides,
    }
    update = {key: value for key, value in values.items() if value is not None}
    try:
        return RepositoryConfig(**{**config.repository.model_dump(), **update})
    except ValueError as e:
        raise click.BadParameter(str(e))


def build_store(ctx: click.Context) -> ObjectStore:
    config: GlobalConfig = ctx.obj["config"]
    if config.storage.backend == "s3" and not config.storage.bucket:
        raise click.UsageError("No value provided for required option '--bucket'")
    try:
        return create_object_store(config.storage)
    except ValueError as e:
        raise click.UsageError(str(e))


def build_publisher(
    ctx: click.Context, repository: RepositoryConfig, lock: Optional[bool]
) -> RepositoryPublisher:
    config: GlobalConfig = ctx.obj["config"]
    lock_config = config.lock
    if lock is not None:
        lock_config = lock_config.model_copy(update={"enabled": lock})

    return RepositoryPublisher(
        build_store(ctx),
        repository,
        lock_config=lock_config,
        signer=create_signer(config.signing),
        output=ctx.obj["output"],
    )


def fail(ctx: click.Context, message: str) -> None:
    """Report an error and exit with status 1."""
    ctx.obj["output"].error(message)
    ctx.exit(1)

