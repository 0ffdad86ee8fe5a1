"""Read-only probes of the host state."""
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import sh

from vlsetup.errors import CommandFailedError
from vlsetup.utils import command_exists, log_debug


@dataclass(frozen=True)
class PathInfo:
    """Owner, group and permission bits of a path."""

    owner: str
    group: str
    mode: int

    @classmethod
    def of(cls, path: Path) -> "PathInfo":
        """Stat path, following symlinks."""
        st = path.stat()
        return cls(path.owner(), path.group(), stat.S_IMODE(st.st_mode))


class HostProbe:
    """Answers questions about the host without changing it."""

    def command_exists(self, command: str) -> bool:
        """Check if a command exists in the system PATH."""
        return command_exists(command)

    def package_manager(self) -> Optional[str]:
        """Return the supported package manager found first, dnf before apt."""
        for manager in ('dnf', 'apt'):
            if self.command_exists(manager):
                return manager
        return None

    def user_groups(self, user: str) -> List[str]:
        """Names of the groups user belongs to."""
        try:
            return str(sh.id("-nG", user)).split()
        except sh.ErrorReturnCode as e:
            raise CommandFailedError(f"id -nG {user}", f"exit code {e.exit_code}") from e

    def unit_files(self) -> str:
        """Raw output of systemctl list-unit-files, empty without systemd."""
        try:
            return str(sh.systemctl("list-unit-files", "--no-legend", "--no-pager"))
        except (sh.ErrorReturnCode, sh.CommandNotFound):
            log_debug("systemctl not available, skipping unit lookup")
            return ""

    def _systemctl_ok(self, *args: str) -> bool:
        try:
            sh.systemctl(*args)
        except (sh.ErrorReturnCode, sh.CommandNotFound):
            return False
        return True

    def unit_enabled(self, unit: str) -> bool:
        """Check if unit is enabled."""
        return self._systemctl_ok("is-enabled", "--quiet", unit)

    def unit_active(self, unit: str) -> bool:
        """Check if unit is currently active."""
        return self._systemctl_ok("is-active", "--quiet", unit)

    def pipx_apps(self) -> List[str]:
        """Names of the applications installed with pipx."""
        try:
            output = str(sh.pipx("list", "--short"))
        except (sh.ErrorReturnCode, sh.CommandNotFound) as e:
            raise CommandFailedError("pipx list --short", e.__class__.__name__) from e
        return [line.split()[0] for line in output.splitlines() if line.strip()]

    def pipx_has_package(self, app: str, package: str) -> bool:
        """Check if package is installed in the pipx environment of app."""
        try:
            sh.pipx("runpip", app, "show", package)
        except (sh.ErrorReturnCode, sh.CommandNotFound):
            return False
        return True

    def path_exists(self, path: Path) -> bool:
        """Check if path exists."""
        return path.exists()

    def owner_of(self, path: Path) -> Optional[Tuple[str, str]]:
        """Return (user, group) owning path, or None when it is missing."""
        if not path.is_dir():
            return None
        info = PathInfo.of(path)
        return info.owner, info.group

    def snapshot(self, paths) -> Dict[Path, PathInfo]:
        """Ownership and mode of each existing path."""
        result = {}
        for path in paths:
            if path.exists():
                result[path] = PathInfo.of(path)
        return result

    def snapshot_tree(self, root: Path) -> Dict[Path, PathInfo]:
        """Ownership and mode of root and everything below it that is readable."""
        if not root.exists():
            return {}
        result = {root: PathInfo.of(root)}
        for dirpath, dirnames, filenames in os.walk(root):
            for name in dirnames + filenames:
                path = Path(dirpath) / name
                try:
                    result[path] = PathInfo.of(path)
                except (OSError, KeyError) as e:
                    log_debug(f"cannot stat {path}: {e}")
        return result
