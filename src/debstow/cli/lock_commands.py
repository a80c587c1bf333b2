"""Repository lock inspection commands."""

from typing import Optional

import click

from debstow.apt.lock import ObjectStoreLock
from debstow.cli.common import CONTEXT_SETTINGS, build_store, fail, repository_options, resolve_repository
from debstow.core.config import GlobalConfig
from debstow.core.errors import DebstowError


def create_lock_group(cli: click.Group) -> click.Group:
    """Create and return the lock command group.

    Args:
        cli: Parent CLI group to attach to

    Returns:
        The lock command group
    """
    def _lock(ctx: click.Context, arch: Optional[str], **repository_args) -> ObjectStoreLock:
        config: GlobalConfig = ctx.obj["config"]
        repository = resolve_repository(config, **repository_args)
        return ObjectStoreLock(
            build_store(ctx),
            repository.codename,
            repository.component,
            arch,
            cache_control=repository.cache_control,
            config=config.lock,
        )

    @cli.group(context_settings=CONTEXT_SETTINGS)
    def lock() -> None:
        """Repository lock commands."""
        pass

    @lock.command("status")
    @repository_options
    @click.option("--arch", "-a", default=None, help="Architecture the lock was taken for")
    @click.pass_context
    def lock_status(ctx: click.Context, arch: Optional[str], **repository_args) -> None:
        """Show whether the repository is locked and by whom."""
        repo_lock = _lock(ctx, arch, **repository_args)

        try:
            if not repo_lock.locked():
                click.echo(f"Not locked ({repo_lock.path})")
                return
            holder = repo_lock.current()
        except DebstowError as e:
            fail(ctx, str(e))

        click.echo(f"Locked by {holder.user} at host {holder.host} ({repo_lock.path})")

    @lock.command("release")
    @repository_options
    @click.option("--arch", "-a", default=None, help="Architecture the lock was taken for")
    @click.option("--yes", is_flag=True, help="Do not ask for confirmation")
    @click.pass_context
    def lock_release(ctx: click.Context, arch: Optional[str], yes: bool, **repository_args) -> None:
        """Remove a lock left behind by another publisher.

        Only use this when the holder is known to be gone; the lock is never
        broken automatically.
        """
        repo_lock = _lock(ctx, arch, **repository_args)

        try:
            if not repo_lock.locked():
                click.echo(f"Not locked ({repo_lock.path})")
                return
            holder = repo_lock.current()
            if not yes:
                click.confirm(
                    f"Remove lock held by {holder.user} at host {holder.host}?", abort=True
                )
            repo_lock.unlock()
        except DebstowError as e:
            fail(ctx, str(e))

        click.echo(f"Lock released ({repo_lock.path})")

    return lock
