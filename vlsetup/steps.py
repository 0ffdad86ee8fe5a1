"""Provisioning workflow steps."""
from dataclasses import dataclass
from enum import Enum
from typing import List

from vlsetup.utils import log_debug


class Step(Enum):
    PACKAGES = "packages"
    LIBVIRT_GROUP = "libvirt-group"
    VIRT_LIGHTNING = "virt-lightning"
    USER_DIRS = "user-dirs"
    PERMISSIONS = "permissions"
    SUMMARY = "summary"


# Declaration order of Step is the execution order.
PREDECESSORS = {
    Step.PACKAGES: (),
    Step.LIBVIRT_GROUP: (Step.PACKAGES,),
    Step.VIRT_LIGHTNING: (Step.PACKAGES,),
    Step.USER_DIRS: (),
    Step.PERMISSIONS: (Step.PACKAGES, Step.USER_DIRS),
    Step.SUMMARY: (
        Step.PACKAGES, Step.LIBVIRT_GROUP, Step.VIRT_LIGHTNING,
        Step.USER_DIRS, Step.PERMISSIONS,
    ),
}


class StepStatus(Enum):
    SATISFIED = "satisfied"
    CHANGED = "changed"
    SKIPPED = "skipped"
    RELOGIN_REQUIRED = "relogin-required"


@dataclass(frozen=True)
class StepResult:
    step: Step
    status: StepStatus
    message: str = ""

    @property
    def stops_run(self) -> bool:
        """Whether later steps must not run."""
        return self.status is StepStatus.RELOGIN_REQUIRED


def step_order() -> List[Step]:
    """Steps in execution order, checked against their declared predecessors."""
    order = list(Step)
    seen = set()
    for step in order:
        missing = [p for p in PREDECESSORS[step] if p not in seen]
        if missing:
            raise RuntimeError(f"Step {step.value} runs before {', '.join(p.value for p in missing)}")
        seen.add(step)
    return order


def run_summary(settings, host, executor) -> StepResult:
    """Print the help menu once every other step has completed."""
    from vlsetup.menu import main_menu
    main_menu(settings)
    return StepResult(Step.SUMMARY, StepStatus.SATISFIED)


def provision_system(settings, executor, host=None) -> List[StepResult]:
    """Main provisioning workflow.

    Runs every step in order and returns their results. A step that needs
    the operator to log in again ends the run early; its result is the last
    one in the list.
    """
    from vlsetup.host import HostProbe
    from vlsetup.linux import STEP_RUNNERS

    host = host or HostProbe()
    runners = dict(STEP_RUNNERS)
    runners[Step.SUMMARY] = run_summary

    results = []
    for step in step_order():
        log_debug(f"Running step {step.value}")
        result = runners[step](settings, host, executor)
        results.append(result)
        if result.stops_run:
            log_debug(f"Step {step.value} stopped the run")
            break
    return results
