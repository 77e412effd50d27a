import logging
import os
from pathlib import Path

import click
import toml
from libtc import BTFailure, bdecode

from .__version__ import __version__
from .control import QBittorrentControl
from .exceptions import (
    ConflictingRenamesException,
    ControlPlaneException,
    FailedToParseTorrentException,
    InvalidSearchPathException,
)
from .executor import DiskRenamer
from .indexer import scan_directory
from .matcher import find_matches
from .planner import find_conflicts, generate_renames
from .session import MatchSession
from .utils import humanize_bytes, parse_torrent_manifest, plural, status_formatter

DEFAULT_CONFIG_FILE = """[filematcher]
url = "http://localhost:8080"
username = ""
password = ""
timeout = 30
same_extension = true
ignore_file_patterns = [ ]
ignore_directory_patterns = [ ]
"""

BASE_CONFIG_FILE = """[filematcher]
url = "http://localhost:8080"
username = "admin"
# password = ""
# Seconds before a single call to qBittorrent is given up on.
timeout = 30
# Only match files that share the extension of the torrent file.
same_extension = true
ignore_file_patterns = [ ]
ignore_directory_patterns = [ ]
"""

ENVIRONMENT_OVERRIDES = {
    "QBT_URL": "url",
    "QBT_USERNAME": "username",
    "QBT_PASSWORD": "password",
}

logger = logging.getLogger(__name__)


def parse_config_file(path):
    base_config = toml.loads(DEFAULT_CONFIG_FILE)
    config = toml.load(path)
    parsed_config = base_config["filematcher"]
    parsed_config.update(config.get("filematcher", {}))

    for env_name, key in ENVIRONMENT_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            logger.debug(f"Using {key} from environment variable {env_name}")
            parsed_config[key] = value

    return parsed_config


def create_control(config):
    return QBittorrentControl(
        config["url"],
        username=config["username"],
        password=config["password"],
        timeout=config["timeout"],
    )


def validate_config_path(ctx, param, value):
    if value is not None:  # check given path first
        config_path = Path(value)
        if not config_path.is_file():
            raise click.BadParameter(f"File {value!r} does not exist or is not a file.")
        return config_path

    # check the environment variables
    config_path = os.environ.get("FILEMATCHER_CONFIG", "")
    if config_path:
        config_path = Path(config_path)
        if config_path.is_dir():
            config_path = config_path / "config.toml"
        if config_path.is_file():
            return config_path

    # path guess order
    # * ./config.toml
    # * ~/.config/filematcher/config.toml (and windows equivalent)
    config_path = Path("config.toml")
    if config_path.is_file():
        return config_path

    config_parent_path = Path(click.get_app_dir("filematcher"))
    if not config_parent_path.exists():
        config_parent_path.mkdir(parents=True)

    config_path = config_parent_path / Path("config.toml")
    if not config_path.exists():
        click.echo(
            f"Config file does not exist, creating a config file at path: {config_path!s}"
        )
        click.echo("Remember to set the address and login of your qBittorrent WebUI")

        config_path.write_text(BASE_CONFIG_FILE)

    return config_path


@click.group()
@click.option(
    "-c",
    "--config",
    help="Path to config file",
    callback=validate_config_path,
    type=click.Path(exists=True, dir_okay=False),
)
@click.option("-v", "--verbose", help="Verbose logging", flag_value=True, default=False)
@click.version_option(__version__)
@click.pass_context
def cli(ctx, config, verbose):
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(levelname)s:%(name)s:%(lineno)d:%(message)s"
        )
    ctx.ensure_object(dict)
    ctx.obj.update(parse_config_file(config))
    if "control" not in ctx.obj:
        ctx.obj["control"] = create_control(ctx.obj)


@cli.command(help="Checks if the config file exists and is loadable.")
@click.pass_context
def check_config(ctx):
    click.echo("We made it this far without a crash so the config must be loadable.")


@cli.command(help="Test the connection to qBittorrent.")
@click.pass_context
def test_connection(ctx):
    control = ctx.obj["control"]
    if control.test_connection():
        click.echo(f"{click.style('OK ', fg='green')} {ctx.obj['url']}")
    else:
        click.echo(f"{click.style('BAD', fg='red')} {ctx.obj['url']}")
        ctx.exit(1)


@cli.command(help="List torrents in the client.")
@click.pass_context
def ls(ctx):
    control = ctx.obj["control"]
    try:
        torrents = control.list_torrents()
    except ControlPlaneException as e:
        raise click.ClickException(str(e))

    for torrent in torrents:
        percent = int(torrent.progress * 100)
        if percent == 100:
            color = "green"
        elif percent:
            color = "yellow"
        else:
            color = "red"
        click.echo(
            f"[{click.style((str(percent) + '%').rjust(4), fg=color)}] {torrent.hash} {torrent.name} ({humanize_bytes(torrent.size)})"
        )


def resolve_ambiguous(state):
    """Ask which candidate to use for every ambiguous result, 0 skips."""
    for i, result in enumerate(state):
        if not result.is_ambiguous:
            continue
        entry = result.manifest_entry
        click.echo("")
        click.echo(
            f"Multiple matches found for: {entry.name} ({humanize_bytes(entry.size)})"
        )
        for j, disk_file in enumerate(result.candidates, 1):
            click.echo(f"  [{j}] {disk_file.path}")
        click.echo("  [0] Skip this file")
        choice = click.prompt(
            "Enter choice",
            type=click.IntRange(0, len(result.candidates)),
            default=0,
        )
        if choice:
            state = state.select(i, result.candidates[choice - 1])
    return state


def echo_results(results):
    for result in results:
        entry = result.manifest_entry
        if result.is_matched:
            status_formatter("matched", entry.name, f"-> {result.selected.path}")
        elif result.is_ambiguous:
            status_formatter(
                "ambiguous", entry.name, f"{len(result.candidates)} candidates"
            )
        else:
            status_formatter("unmatched", entry.name, f"({humanize_bytes(entry.size)})")


def echo_plan(ops):
    if not ops:
        click.echo("No renames needed - all files already have correct paths")
        return
    click.echo(f"Renames to apply ({len(ops)}):")
    for op in ops:
        click.echo(f"  {op.old_path}")
        click.echo(f"    -> {op.new_path}")
    for old_path, conflicting_ops in find_conflicts(ops).items():
        click.echo(
            click.style(
                f"Warning: {old_path} is selected for {len(conflicting_ops)} files, only the first rename can succeed",
                fg="yellow",
            )
        )


@cli.command(help="Match a torrent's files with files on disk and rename them.")
@click.argument("torrent_hash", type=str)
@click.argument("path", type=click.Path())
@click.option(
    "--same-ext/--no-same-ext",
    "same_extension",
    help="Only match files with the same extension.",
    default=None,
)
@click.option(
    "-a",
    "--auto",
    help="Use the first candidate for ambiguous files instead of asking.",
    flag_value=True,
    default=False,
)
@click.option(
    "--dry-run",
    help="Show what would be done without making changes.",
    flag_value=True,
    default=False,
)
@click.option(
    "--skip-unmatched",
    help="Set priority to 0 for files without a match.",
    flag_value=True,
    default=False,
)
@click.option(
    "-r",
    "--recheck",
    help="Recheck the torrent after renames were applied.",
    flag_value=True,
    default=False,
)
@click.option(
    "-m",
    "--mode",
    help="client renames the torrent's files, disk moves the files on disk.",
    type=click.Choice(["client", "disk"]),
    default="client",
)
@click.option(
    "--strict",
    help="Refuse to apply when one file is selected for several torrent files.",
    flag_value=True,
    default=False,
)
@click.pass_context
def match(
    ctx,
    torrent_hash,
    path,
    same_extension,
    auto,
    dry_run,
    skip_unmatched,
    recheck,
    mode,
    strict,
):
    if same_extension is None:
        same_extension = ctx.obj["same_extension"]

    session = MatchSession(
        ctx.obj["control"],
        torrent_hash,
        path,
        require_same_extension=same_extension,
        ignore_file_patterns=ctx.obj["ignore_file_patterns"],
        ignore_directory_patterns=ctx.obj["ignore_directory_patterns"],
        reject_conflicts=strict,
    )

    try:
        click.echo(f"Matching torrent {torrent_hash} against {path}")
        summary = session.scan()
        if not auto and not dry_run:
            session.state = resolve_ambiguous(session.state)
        elif auto:
            session.auto_select_first()
        content_root = session.get_content_root()
    except InvalidSearchPathException as e:
        raise click.BadParameter(str(e), param_hint="PATH")
    except ControlPlaneException as e:
        raise click.ClickException(str(e))

    echo_results(session.state)
    unmatched_indices = session.state.unmatched_indices()
    click.echo(
        f"Matched: {summary.matched_count} of {summary.total_files}, Unmatched: {len(unmatched_indices)}"
    )

    rename_plan = session.build_plan(content_root=content_root)
    click.echo("")
    echo_plan(rename_plan.ops)

    if skip_unmatched and unmatched_indices:
        click.echo(
            f"Skipping {plural(len(unmatched_indices), 'unmatched file')} (setting priority to 0)"
        )
        if dry_run:
            for result in session.state:
                if not result.is_matched:
                    status_formatter("skipped", result.manifest_entry.name)
        elif session.skip_unmatched():
            click.echo(f"Set priority to 0 for {plural(len(unmatched_indices), 'file')}")
        else:
            click.echo(click.style("Failed to set priority", fg="red"), err=True)
    elif unmatched_indices:
        click.echo("Use --skip-unmatched to set priority to 0 for files without a match")

    if dry_run:
        click.echo("[DRY RUN] No changes made")
        return

    if not rename_plan.ops:
        return

    rename_fn = None
    if mode == "disk":
        rename_fn = DiskRenamer()

    click.echo("Applying renames...")
    try:
        apply_result = session.apply(rename_plan, rename_fn=rename_fn)
    except ConflictingRenamesException as e:
        raise click.ClickException(str(e))

    for failure in apply_result.failures:
        status_formatter("failed", failure.op.old_path, failure.error)
    message = f"Renamed {plural(apply_result.success_count, 'file')} successfully"
    if apply_result.failure_count:
        message += f", {apply_result.failure_count} failed"
    click.echo(message)
    if session.manifest is None:
        click.echo(
            click.style("Failed to reload the torrent's files after renaming", fg="yellow"),
            err=True,
        )

    if recheck and apply_result.success_count:
        click.echo("Triggering torrent recheck...")
        if session.recheck():
            click.echo("Recheck started - qBittorrent will verify file integrity")
        else:
            click.echo(click.style("Failed to trigger recheck", fg="red"), err=True)


@cli.command(help="Show the renames for a torrent file without contacting a client.")
@click.argument("torrent", type=click.Path(exists=True, dir_okay=False))
@click.argument("path", type=click.Path())
@click.option(
    "--same-ext/--no-same-ext",
    "same_extension",
    help="Only match files with the same extension.",
    default=None,
)
@click.option(
    "--content-root",
    help="Folder the torrent will be downloaded to, defaults to PATH.",
    type=click.Path(),
)
@click.option(
    "-u",
    "--utf8-compat-mode",
    help="Try work around utf-8 errors, not recommended",
    flag_value=True,
    default=False,
)
@click.pass_context
def plan(ctx, torrent, path, same_extension, content_root, utf8_compat_mode):
    if same_extension is None:
        same_extension = ctx.obj["same_extension"]

    torrent_path = Path(torrent)
    try:
        manifest = parse_torrent_manifest(
            bdecode(torrent_path.read_bytes()), utf8_compat_mode=utf8_compat_mode
        )
    except (BTFailure, FailedToParseTorrentException) as e:
        logger.debug(f"Failed to parse {torrent_path}: {e!r}")
        raise click.ClickException(f"Failed to parse torrent file {torrent_path.name!r}")

    try:
        disk_files = scan_directory(
            path,
            ignore_file_patterns=ctx.obj["ignore_file_patterns"],
            ignore_directory_patterns=ctx.obj["ignore_directory_patterns"],
        )
    except InvalidSearchPathException as e:
        raise click.BadParameter(str(e), param_hint="PATH")

    summary = find_matches(manifest, disk_files, require_same_extension=same_extension)
    echo_results(summary.results)
    click.echo(f"Matched: {summary.matched_count} of {summary.total_files}")
    click.echo("")
    scan_root = os.path.abspath(os.path.expanduser(path))
    echo_plan(generate_renames(summary.results, scan_root, content_root=content_root))


if __name__ == "__main__":
    cli()
