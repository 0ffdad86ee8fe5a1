"""Planned host mutations and the executor that applies them."""
import pwd
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import sh

from vlsetup.errors import CommandFailedError
from vlsetup.utils import is_root, log_action, log_debug, log_warn


@dataclass(frozen=True)
class Command:
    """An external command to run, optionally with sudo."""

    argv: Tuple[str, ...]
    sudo: bool = False
    best_effort: bool = False
    mutates: bool = True

    def render(self) -> str:
        """Render the command as it would be typed in a shell."""
        text = " ".join(shlex.quote(str(arg)) for arg in self.argv)
        return f"sudo {text}" if self.sudo else text


@dataclass(frozen=True)
class MakeDirectory:
    """Create a directory as the invoking user, parents included."""

    path: Path
    owner: Optional[str] = None
    mutates: bool = True

    def render(self) -> str:
        """Render the action as the equivalent shell command."""
        return f"mkdir -p {shlex.quote(str(self.path))}"


@dataclass(frozen=True)
class WriteFile:
    """Create a file that must not exist yet."""

    path: Path
    content: str
    owner: Optional[str] = None
    mutates: bool = True

    def render(self) -> str:
        """Render the action for dry-run output."""
        return f"create {shlex.quote(str(self.path))}"


def cmd(*argv, sudo: bool = False, best_effort: bool = False, mutates: bool = True) -> Command:
    """Build a Command, turning every argument into a string."""
    return Command(tuple(str(arg) for arg in argv), sudo=sudo, best_effort=best_effort, mutates=mutates)


def mutations(actions: Iterable) -> list:
    """Filter a plan down to the actions that change host state."""
    return [action for action in actions if action.mutates]


def missing_parents(path: Path) -> List[Path]:
    """Return path and its ancestors that do not exist yet, outermost first."""
    missing = []
    for candidate in [path, *path.parents]:
        if candidate.exists():
            break
        missing.append(candidate)
    return list(reversed(missing))


def hand_over(paths: Iterable[Path], owner: Optional[str]) -> None:
    """Give paths created as root back to owner and their primary group."""
    if not owner or not is_root():
        return
    gid = pwd.getpwnam(owner).pw_gid
    for path in paths:
        log_debug(f"chown {owner} {path}")
        shutil.chown(path, user=owner, group=gid)


class Executor:
    """Apply planned actions, or only report them in dry-run mode."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def apply(self, actions: Iterable) -> None:
        """Apply each action in order, stopping at the first fatal failure."""
        for action in actions:
            if self.dry_run and action.mutates:
                log_action(f"[DRY RUN] Would run: {action.render()}")
                continue
            if isinstance(action, Command):
                self.run_command(action)
            elif isinstance(action, (MakeDirectory, WriteFile)):
                self.write_path(action)
            else:
                raise TypeError(f"Unknown action: {action!r}")

    def write_path(self, action) -> None:
        """Create a directory or file, owned by the action's owner under sudo."""
        try:
            if isinstance(action, MakeDirectory):
                log_debug(action.render())
                created = missing_parents(action.path)
                action.path.mkdir(parents=True, exist_ok=True)
            else:
                log_action(f"Creating {action.path}...")
                # "x" never clobbers a file created since the plan was made
                with open(action.path, 'x') as f:
                    f.write(action.content)
                created = [action.path]
            hand_over(created, action.owner)
        except (OSError, KeyError) as e:
            raise CommandFailedError(action.render(), str(e)) from e

    def run_command(self, command: Command) -> None:
        """Run a command through sh in the foreground so sudo can prompt."""
        argv = list(command.argv)
        log_debug(f"RUN: {command.render()}")
        try:
            if command.sudo and not is_root():
                sh.sudo(*argv, _fg=True)
            else:
                sh.Command(argv[0])(*argv[1:], _fg=True)
        except sh.ErrorReturnCode as e:
            if command.best_effort:
                log_warn(f"{command.render()} failed (exit {e.exit_code}), continuing.")
                return
            raise CommandFailedError(command.render(), f"exit code {e.exit_code}") from e
        except sh.CommandNotFound as e:
            if command.best_effort:
                log_warn(f"{argv[0]} not found, skipping: {command.render()}")
                return
            raise CommandFailedError(command.render(), "command not found") from e
