"""Linux provisioning steps for a user-space virt-lightning setup.

Every step comes in two halves: a pure ``plan_*`` function that turns observed
host facts into a list of actions, and a ``run_*`` function that gathers those
facts through a HostProbe, plans, and hands the plan to an Executor.
"""
from pathlib import Path
from typing import Dict, Optional, Sequence

from vlsetup.actions import Executor, MakeDirectory, WriteFile, cmd, mutations
from vlsetup.config import Settings, read_storage_dir, render_config
from vlsetup.errors import UnsupportedEnvironmentError
from vlsetup.host import HostProbe, PathInfo
from vlsetup.steps import Step, StepResult, StepStatus
from vlsetup.utils import log_action, log_info, log_warn

MARKER_BINARY = "virsh"

DNF_PACKAGES = (
    "libvirt", "libvirt-client", "libvirt-devel", "gcc", "python3-devel",
    "qemu-kvm", "virt-install", "genisoimage",
)

APT_PACKAGES = (
    "python3-venv", "pkg-config", "gcc", "libvirt-dev", "python3-dev",
    "libvirt-clients", "libvirt-daemon-system", "qemu-system-x86", "virtinst",
    "genisoimage",
)

LIBVIRT_UNITS = ("libvirtd.service", "libvirtd.socket")

DISK_IMAGE_MODE = 0o660
DIRECTORY_MODE = 0o775


def _result(step: Step, actions: Sequence, message: str) -> StepResult:
    """CHANGED when the plan held any mutation, SATISFIED otherwise."""
    status = StepStatus.CHANGED if mutations(actions) else StepStatus.SATISFIED
    return StepResult(step, status, message)


def plan_system_install(manager: Optional[str], packages_for: Dict[str, Sequence[str]]) -> list:
    """Install packages through whichever package manager was detected."""
    if manager == 'dnf':
        return [cmd("dnf", "install", "-y", *packages_for['dnf'], sudo=True)]
    if manager == 'apt':
        return [
            cmd("apt", "update", sudo=True),
            cmd("apt", "install", "-y", *packages_for['apt'], sudo=True),
        ]
    raise UnsupportedEnvironmentError("Unsupported package manager. Please install manually.")


# --- packages ---------------------------------------------------------------

def plan_packages(has_marker: bool, manager: Optional[str]) -> list:
    """Install the libvirt base packages unless the marker binary is present."""
    if has_marker:
        return []
    return plan_system_install(manager, {'dnf': DNF_PACKAGES, 'apt': APT_PACKAGES})


def select_libvirt_unit(unit_files: str) -> Optional[str]:
    """Pick the libvirt unit to enable, preferring the service over the socket."""
    registered = {line.split()[0] for line in unit_files.splitlines() if line.strip()}
    for unit in LIBVIRT_UNITS:
        if unit in registered:
            return unit
    return None


def socket_for(unit: str) -> Optional[str]:
    """Return the socket unit that activates a service unit."""
    if unit.endswith(".service"):
        return unit[: -len(".service")] + ".socket"
    return None


def plan_libvirt_service(unit: Optional[str], enabled: bool, active: bool, socket_active: bool = False) -> list:
    """Enable and start the daemon unless it is enabled and reachable.

    A socket-activated libvirtd exits when idle, so an enabled service whose
    socket is listening counts as running.
    """
    if unit is None or (enabled and (active or socket_active)):
        return []
    return [cmd("systemctl", "enable", "--now", unit, sudo=True)]


def run_packages(settings: Settings, host: HostProbe, executor: Executor) -> StepResult:
    """Install libvirt when missing and make sure its daemon is running."""
    log_info("Checking required packages...")
    has_marker = host.command_exists(MARKER_BINARY)
    manager = None if has_marker else host.package_manager()
    actions = plan_packages(has_marker, manager)
    if actions:
        log_action("Installing libvirt base packages...")
    executor.apply(actions)

    unit = select_libvirt_unit(host.unit_files())
    service_actions = []
    if unit is not None:
        socket = socket_for(unit)
        service_actions = plan_libvirt_service(
            unit,
            host.unit_enabled(unit),
            host.unit_active(unit),
            socket is not None and host.unit_active(socket),
        )
    if unit is None:
        log_warn("No libvirtd unit registered, not enabling the daemon.")
    elif service_actions:
        log_action(f"Enabling {unit}...")
    executor.apply(service_actions)
    return _result(Step.PACKAGES, actions + service_actions, "libvirt packages ready")


# --- libvirt group ------------------------------------------------------------

RELOGIN_MESSAGE = (
    "You have been added to {group} group.\n"
    "Please logout/login (or reboot) and rerun this command."
)


def plan_group_membership(user: str, groups: Sequence[str], group: str) -> list:
    """Add user to group unless already a member."""
    if group in groups:
        return []
    return [cmd("usermod", "-aG", group, user, sudo=True)]


def run_group_check(settings: Settings, host: HostProbe, executor: Executor) -> StepResult:
    """Ensure libvirt group membership, asking for a re-login after adding it."""
    group = settings.libvirt_group
    actions = plan_group_membership(settings.user, host.user_groups(settings.user), group)
    if not actions:
        return StepResult(Step.LIBVIRT_GROUP, StepStatus.SATISFIED, f"{settings.user} is in {group} group")
    log_action(f"User {settings.user} is not in {group} group. Adding...")
    executor.apply(actions)
    return StepResult(Step.LIBVIRT_GROUP, StepStatus.RELOGIN_REQUIRED, RELOGIN_MESSAGE.format(group=group))


# --- pipx + virt-lightning ------------------------------------------------------

def plan_virt_lightning(
    settings: Settings,
    has_pipx: bool,
    manager: Optional[str],
    installed_apps: Sequence[str],
    injected: Sequence[str],
) -> list:
    """Install pipx, virt-lightning and its extra libraries as needed."""
    actions = []
    if not has_pipx:
        try:
            actions += plan_system_install(manager, {'dnf': ("pipx",), 'apt': ("pipx",)})
        except UnsupportedEnvironmentError:
            raise UnsupportedEnvironmentError("Install pipx manually.") from None
    if settings.vl_app not in installed_apps:
        actions.append(cmd("pipx", "install", settings.vl_package))
    for package in settings.inject_packages:
        if package not in injected:
            actions.append(cmd("pipx", "inject", settings.vl_app, package, best_effort=True))
    return actions


def run_virt_lightning(settings: Settings, host: HostProbe, executor: Executor) -> StepResult:
    """Install virt-lightning through pipx."""
    has_pipx = host.command_exists("pipx")
    manager = None if has_pipx else host.package_manager()
    if has_pipx:
        apps = host.pipx_apps()
        injected = [p for p in settings.inject_packages if host.pipx_has_package(settings.vl_app, p)]
    else:
        apps, injected = [], []
    actions = plan_virt_lightning(settings, has_pipx, manager, apps, injected)
    if not has_pipx:
        log_action("Installing pipx...")
    if settings.vl_app not in apps:
        log_action(f"Installing {settings.vl_app} via pipx...")
    if any(a.best_effort for a in actions):
        log_action("Injecting extra libraries for remote distro listing...")
    executor.apply(actions)
    return _result(Step.VIRT_LIGHTNING, actions, f"{settings.vl_app} installed via pipx")


# --- user directories + config.ini ----------------------------------------------

def plan_user_dirs(settings: Settings, existing: Sequence[Path]) -> list:
    """Create the image cache, config dir and config.ini when absent."""
    actions = []
    for path in (settings.image_dir, settings.config_dir):
        if path not in existing:
            actions.append(MakeDirectory(path, owner=settings.user))
    if settings.config_file not in existing:
        actions.append(WriteFile(settings.config_file, render_config(settings), owner=settings.user))
    return actions


def run_user_dirs(settings: Settings, host: HostProbe, executor: Executor) -> StepResult:
    """Materialize user directories and the first-run config."""
    log_info("Creating user virt-lightning directories...")
    candidates = (settings.image_dir, settings.config_dir, settings.config_file)
    existing = [p for p in candidates if host.path_exists(p)]
    if settings.config_file in existing:
        storage_dir = read_storage_dir(settings.config_file)
        log_info(f"Keeping existing {settings.config_file} (storage_dir = {storage_dir})")
    actions = plan_user_dirs(settings, existing)
    executor.apply(actions)
    return _result(Step.USER_DIRS, actions, "user directories ready")


# --- pool ownership + permissions ---------------------------------------------

def _in_subtree(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def plan_permissions(
    settings: Settings,
    qemu_user: str,
    qemu_group: str,
    pool_tree: Dict[Path, PathInfo],
    ancestors: Dict[Path, PathInfo],
) -> list:
    """Plan pool ownership, modes and ancestor traversal for the qemu account.

    ``pool_tree`` maps every existing path under the pool (the pool itself
    included) to its current state; ``ancestors`` does the same for the chain
    returned by ``Settings.ancestor_chain``. The recursive pool chown is always
    followed by the upstream override, never the other way round.
    """
    pool, upstream, user = settings.pool_dir, settings.upstream_dir, settings.user
    actions = []
    if upstream not in pool_tree:
        actions.append(cmd("mkdir", "-p", upstream, sudo=True))

    pool_wrong = pool not in pool_tree or any(
        (info.owner, info.group) != (qemu_user, qemu_group)
        for path, info in pool_tree.items()
        if not _in_subtree(path, upstream)
    )
    upstream_wrong = upstream not in pool_tree or any(
        info.owner != user
        for path, info in pool_tree.items()
        if _in_subtree(path, upstream)
    )
    if pool_wrong:
        actions.append(cmd("chown", "-Rv", f"{qemu_user}:{qemu_group}", pool, sudo=True))
    if pool_wrong or upstream_wrong:
        actions.append(cmd("chown", "-Rv", user, upstream, sudo=True))

    known = dict(ancestors)
    known.update(pool_tree)
    loose = [
        path for path in (settings.base_dir, pool, upstream)
        if path not in known or (known[path].mode & 0o777) != DIRECTORY_MODE
    ]
    if loose:
        actions.append(cmd("chmod", "-v", "775", *loose, sudo=True))

    images = sorted(
        path for path, info in pool_tree.items()
        if path.parent == pool and path.suffix == ".qcow2" and info.mode != DISK_IMAGE_MODE
    )
    if images:
        actions.append(cmd("chmod", "-v", "660", *images, sudo=True))

    chain = settings.ancestor_chain()
    closed = [path for path in chain if path not in ancestors or not ancestors[path].mode & 0o001]
    if closed:
        actions.append(cmd("chmod", "-v", "o+x", *closed, sudo=True))

    actions.append(cmd("ls", "-ld", *chain, mutates=False))
    return actions


def run_permissions(settings: Settings, host: HostProbe, executor: Executor) -> StepResult:
    """Reconcile pool ownership for the qemu account, or skip without libvirt."""
    log_info("Checking qemu user/group ownership...")
    owner = host.owner_of(settings.qemu_probe_dir)
    if owner is None:
        message = f"{settings.qemu_probe_dir} not found. Skipping qemu user/group fix."
        log_warn(message)
        return StepResult(Step.PERMISSIONS, StepStatus.SKIPPED, message)

    qemu_user, qemu_group = owner
    log_info(f"Detected qemu user: {qemu_user}, group: {qemu_group}")
    actions = plan_permissions(
        settings,
        qemu_user,
        qemu_group,
        host.snapshot_tree(settings.pool_dir),
        host.snapshot(settings.ancestor_chain()),
    )
    log_info("Applying pool ownership and o+x permissions for qemu access...")
    executor.apply(actions[:-1])
    log_info(">>> current permissions:")
    executor.apply(actions[-1:])
    return _result(Step.PERMISSIONS, actions, "pool permissions reconciled")


STEP_RUNNERS = {
    Step.PACKAGES: run_packages,
    Step.LIBVIRT_GROUP: run_group_check,
    Step.VIRT_LIGHTNING: run_virt_lightning,
    Step.USER_DIRS: run_user_dirs,
    Step.PERMISSIONS: run_permissions,
}
