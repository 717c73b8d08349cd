
from .dsl import sh, target, targets, watch
from .errors import DuplicateTargetError, LaunchError, StepFailure, UnknownTargetError
from .executor import StepExecutor
from .model import Run, RunStatus, Step, Target
from .registry import TargetRegistry, load_targets
from .runner import TargetRunner
from .watch import WatchController

__all__ = [
    "sh", "target", "targets", "watch",
    "Step", "Target", "Run", "RunStatus",
    "TargetRegistry", "load_targets", "StepExecutor", "TargetRunner", "WatchController",
    "DuplicateTargetError", "LaunchError", "StepFailure", "UnknownTargetError",
]
