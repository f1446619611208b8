"""
The cli module defines Nool's CLI interface. It is a presentation layer over the TreeService and has
no domain logic of its own: it parses arguments, asks for confirmations, prints notifications, and
keeps the virtual tree on disk between invocations.
"""

import asyncio
import dataclasses
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import click

from nool.common import VERSION, NoolExpectedError
from nool.config import Config
from nool.engine import TreeService
from nool.notify import NotificationKind
from nool.storage import LocalStorageProvider
from nool.tree import Node
from nool.workspace import load_workspace, reset_workspace, save_workspace

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOTIFICATION_COLORS = {
    NotificationKind.INFO: None,
    NotificationKind.SUCCESS: "green",
    NotificationKind.ERROR: "red",
}


class CliExpectedError(NoolExpectedError):
    pass


@dataclass
class Context:
    config: Config
    virtual: bool


class ClickNotifier:
    """Prints notifications to stderr, keeping stdout for command output."""

    def notify(self, message: str, kind: NotificationKind, duration_ms: int) -> None:
        click.secho(message, fg=NOTIFICATION_COLORS[kind], err=True)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Emit verbose logging.")
@click.option("--config", "-c", type=click.Path(path_type=Path), help="Override the config file location.")  # fmt: skip
@click.option("--root", "-r", type=click.Path(path_type=Path, file_okay=False), help="Override the directory to work on.")  # fmt: skip
@click.option("--virtual", is_flag=True, help="Work on the virtual tree even if a root directory is configured.")  # fmt: skip
@click.pass_context
def cli(
    cc: click.Context,
    verbose: bool,
    config: Path | None = None,
    root: Path | None = None,
    virtual: bool = False,
) -> None:
    """A file tree that stays in sync with a directory, or lives in memory."""

    c = Config.parse_or_default(config_path_override=config)
    if root is not None:
        c = dataclasses.replace(c, root_dir=root)
    cc.obj = Context(config=c, virtual=virtual or c.root_dir is None)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
def version() -> None:
    """Print version."""

    click.echo(VERSION)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the tree as JSON.")
@click.option("--ids", is_flag=True, help="Print node ids instead of names.")
@click.pass_obj
def tree(ctx: Context, as_json: bool, ids: bool) -> None:
    """Print the tree."""

    async def _print(service: TreeService) -> None:
        if as_json:
            click.echo(json.dumps([n.dump() for n in service.snapshot]))
            return
        for line in format_tree(service.snapshot, show_ids=ids):
            click.echo(line)

    run_session(ctx, _print, save=False)


@cli.command()
@click.argument("parent", type=str, nargs=1, default="")
@click.pass_obj
def mkdir(ctx: Context, parent: str) -> None:
    """Create a new folder. Accepts the id of the parent folder (default: the root)."""

    new_id = run_session(ctx, lambda s: s.create_folder(parent))
    click.echo(new_id)


@cli.command()
@click.argument("parent", type=str, nargs=1, default="")
@click.pass_obj
def touch(ctx: Context, parent: str) -> None:
    """Create a new file from the template. Accepts the id of the parent folder (default: the root)."""

    new_id = run_session(ctx, lambda s: s.create_file(parent))
    click.echo(new_id)


@cli.command()
@click.argument("node", type=str, nargs=1)
@click.argument("new_name", type=str, nargs=1)
@click.pass_obj
def rename(ctx: Context, node: str, new_name: str) -> None:
    """Rename a file or folder. Accepts the node's id."""

    new_id = run_session(ctx, lambda s: s.rename_entry(node, new_name))
    click.echo(new_id)


@cli.command()
@click.argument("node", type=str, nargs=1)
@click.option("--yes", "-y", is_flag=True, help="Bypass the confirmation prompt.")
@click.pass_obj
def rm(ctx: Context, node: str, yes: bool) -> None:
    """Delete a file or folder and everything beneath it. Accepts the node's id."""

    if not yes:
        where = "the actual file/folder" if not ctx.virtual else "it from the virtual tree"
        if not click.confirm(f"Are you sure you want to delete {node}? This will permanently delete {where}.", default=False):  # fmt: skip
            logger.info("Aborting: deletion not confirmed.")
            return
    run_session(ctx, lambda s: s.delete_entry(node))


@cli.command()
@click.pass_obj
def reset(ctx: Context) -> None:
    """Clear the saved virtual tree."""

    if not ctx.virtual:
        raise CliExpectedError("reset only applies to the virtual tree: pass --virtual")
    reset_workspace(ctx.config)


def run_session(ctx: Context, fn: Callable[[TreeService], Awaitable[T]], save: bool = True) -> T:
    """
    Build a TreeService for this invocation, run `fn` against it, and tear it down. In virtual mode,
    the tree is loaded from the workspace first and, when `save` is set, written back afterwards.
    """

    async def _session() -> T:
        if ctx.virtual:
            service = TreeService(ctx.config, notifier=ClickNotifier())
            service.load_virtual(load_workspace(ctx.config))
            rv = await fn(service)
            if save:
                save_workspace(ctx.config, service.snapshot)
            return rv

        assert ctx.config.root_dir is not None
        provider = LocalStorageProvider(ctx.config.root_dir, trash=ctx.config.trash_deletes)
        service = TreeService(ctx.config, provider=provider, notifier=ClickNotifier())
        if not await service.connect():
            raise CliExpectedError(f"Connection to {ctx.config.root_dir} was cancelled")
        try:
            return await fn(service)
        finally:
            await service.disconnect()

    return asyncio.run(_session())


def format_tree(forest: tuple[Node, ...], show_ids: bool = False) -> list[str]:
    lines: list[str] = []

    def _walk(nodes: tuple[Node, ...], depth: int) -> None:
        for n in nodes:
            label = n.id if show_ids else n.name
            suffix = "/" if n.is_folder else ""
            lines.append(f"{'  ' * depth}{label}{suffix}")
            if n.children:
                _walk(n.children, depth + 1)

    _walk(forest, 0)
    return lines
