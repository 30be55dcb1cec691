#!/usr/bin/env -S uv run --script

# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "click>=8.2",
# ]
# ///

import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

import click

ERROR_PREFIX = "rename: "
DRY_RUN_MARKER = "(dry run)"

# $N / $NN group references plus the $&, $`, $' and $$ escapes
TEMPLATE_TOKEN = re.compile(r"\$(\d\d?|[$&`'])")


class RenameError(Exception):
    """Base class for everything that can go wrong during a run."""


class InvalidPattern(RenameError):
    pass


class PathResolutionError(RenameError):
    pass


class EnumerationError(RenameError):
    pass


class SubstitutionError(RenameError):
    pass


class RenameApplyError(RenameError):
    pass


@dataclass(frozen=True)
class Invocation:
    pattern: str
    replacement: str
    path: str | None = None
    dry_run: bool = False
    recursive: bool = False
    quiet: bool = False


@dataclass(frozen=True)
class RenamePlan:
    source: Path
    new_name: str

    @property
    def destination(self) -> Path:
        return self.source.parent / self.new_name

    @property
    def changed(self) -> bool:
        return self.new_name != self.source.name


@dataclass
class RunResult:
    planned: list[RenamePlan] = field(default_factory=list)
    renamed: list[RenamePlan] = field(default_factory=list)
    failed: list[tuple[RenamePlan, RenameApplyError]] = field(default_factory=list)


def compile_pattern(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidPattern(str(e)) from e


def resolve_base_path(path: str | None) -> Path:
    """Use the given path verbatim, or the current working directory."""
    if path is not None:
        return Path(path)
    try:
        return Path.cwd()
    except OSError as e:
        raise PathResolutionError(str(e)) from e


def _raise(error: OSError) -> None:
    raise error


def list_files(base: Path, recursive: bool = False) -> list[Path]:
    """
    Collect every regular file under base, sorted by path.

    The list is built completely before anything gets renamed, so renames
    never affect which files are visited. In recursive mode an unreadable
    subdirectory aborts the listing just like an unreadable base path.
    """
    try:
        if recursive:
            entries = [
                dirpath / name
                for dirpath, _dirnames, filenames in base.walk(on_error=_raise)
                for name in filenames
            ]
        else:
            entries = list(base.iterdir())
        files = [entry for entry in entries if entry.is_file()]
    except OSError as e:
        raise EnumerationError(str(e)) from e

    return sorted(files)


def expand_template(template: str, match: re.Match, prefix_start: int = 0) -> str:
    """
    Expand the $ escapes of a replacement template for one match.

    $N and $NN insert capture group N ($0 is the whole match). Groups that
    did not take part in the match, or do not exist, insert nothing. $& is
    the whole match, $` the text since the previous match (starting at
    prefix_start), $' the rest of the string and $$ a literal dollar sign.
    Everything else, backslashes included, is copied as is.
    """

    def expand(token: re.Match) -> str:
        key = token.group(1)
        if key == "$":
            return "$"
        if key == "&":
            return match.group(0)
        if key == "`":
            return match.string[prefix_start : match.start()]
        if key == "'":
            return match.string[match.end() :]
        index = int(key)
        if index > match.re.groups:
            return ""
        return match.group(index) or ""

    return TEMPLATE_TOKEN.sub(expand, template)


def substitute(pattern: re.Pattern, template: str, name: str) -> str:
    """Replace every non-overlapping match of pattern in name."""
    previous_end = 0

    def replace(match: re.Match) -> str:
        nonlocal previous_end
        text = expand_template(template, match, previous_end)
        previous_end = match.end()
        return text

    return pattern.sub(replace, name)


def plan_rename(source: Path, pattern: re.Pattern, template: str) -> RenamePlan:
    try:
        new_name = substitute(pattern, template, source.name)
    except (re.error, RecursionError) as e:
        raise SubstitutionError(f"cannot substitute in {source.name}: {e}") from e
    return RenamePlan(source=source, new_name=new_name)


def display_name(path: Path, recursive: bool) -> str:
    """Absolute path in recursive mode so same-named files can be told apart."""
    return str(path.absolute()) if recursive else path.name


def format_report(plan: RenamePlan, recursive: bool, dry_run: bool) -> str:
    # an empty new name must not display as the parent directory
    destination = plan.destination if recursive else Path(plan.new_name)
    marker = DRY_RUN_MARKER if dry_run else ""
    return (
        f"{display_name(plan.source, recursive)} -> "
        f"{marker}{display_name(destination, recursive)}"
    )


def _is_plain_name(name: str) -> bool:
    if name in ("", ".", ".."):
        return False
    separators = [os.sep] + ([os.altsep] if os.altsep else [])
    return not any(sep in name for sep in separators)


def apply_rename(plan: RenamePlan) -> None:
    """Rename plan.source within its own directory."""
    if not _is_plain_name(plan.new_name):
        raise RenameApplyError(
            f"cannot rename {plan.source}: {plan.new_name!r} is not a valid file name"
        )
    try:
        plan.source.rename(plan.destination)
    except OSError as e:
        raise RenameApplyError(str(e)) from e


def run(invocation: Invocation) -> RunResult:
    """
    Rename every file whose name the pattern changes.

    Raises a RenameError subclass for fatal problems. Failed renames of
    single files are reported on stderr, recorded in the result and do not
    stop the run.
    """
    pattern = compile_pattern(invocation.pattern)
    base = resolve_base_path(invocation.path)
    entries = list_files(base, invocation.recursive)

    result = RunResult()
    for source in entries:
        plan = plan_rename(source, pattern, invocation.replacement)
        if not plan.changed:
            continue
        result.planned.append(plan)

        if not invocation.quiet:
            click.echo(format_report(plan, invocation.recursive, invocation.dry_run))

        if invocation.dry_run:
            continue

        try:
            apply_rename(plan)
        except RenameApplyError as e:
            click.echo(f"{ERROR_PREFIX}{e}", err=True)
            result.failed.append((plan, e))
        else:
            result.renamed.append(plan)

    return result


@click.command(context_settings={"auto_envvar_prefix": "RENAME"})
@click.argument("pattern", type=str)
@click.argument("replacement", type=str)
@click.argument("path", type=str, required=False)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    help="Perform a trial run with no changes",
)
@click.option(
    "--recursive",
    "-r",
    is_flag=True,
    help="Rename recursively in subdirectories",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress non-error messages",
)
def rename(
    pattern: str,
    replacement: str,
    path: str | None,
    dry_run: bool,
    recursive: bool,
    quiet: bool,
) -> None:
    """
    Rename files by replacing PATTERN with REPLACEMENT.

    Regular expressions are supported as well. Use $1, $2, ... in
    REPLACEMENT to insert capture groups. PATH defaults to the current
    directory.

    \b
    Examples:
        rename txt txt.old .
        rename 'file_(\\d+).txt' 'File_$1.txt' /path/to/directory
    """
    invocation = Invocation(
        pattern=pattern,
        replacement=replacement,
        path=path,
        dry_run=dry_run,
        recursive=recursive,
        quiet=quiet,
    )
    try:
        run(invocation)
    except RenameError as e:
        click.echo(f"{ERROR_PREFIX}{e}", err=True)
        sys.exit(1)


def parse_args(argv: list[str]) -> Invocation:
    """Parse command-line arguments into an Invocation without running it.

    Raises click.UsageError for missing, extra or unknown arguments.
    """
    ctx = rename.make_context("rename", list(argv))
    return Invocation(**ctx.params)


if __name__ == "__main__":
    rename()
