# registry.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Tuple

from .dsl import sh, target, targets, watch
from .errors import DuplicateTargetError, TargetFileError, UnknownTargetError
from .model import Step, Target


class TargetRegistry:
    """
    Name -> Target mapping. Populated once at startup, then frozen.
    Registration order is kept for listing.
    """

    def __init__(self, items: Iterable[Target] = ()):
        self._targets: Dict[str, Target] = {}
        self._frozen = False
        for t in items:
            self.register(t)

    @classmethod
    def from_targets(cls, items: Iterable[Target]) -> "TargetRegistry":
        reg = cls(items)
        reg.freeze()
        return reg

    # ---- construction ----

    def register(self, t: Target) -> Target:
        if self._frozen:
            raise RuntimeError(f"registry is frozen, cannot register {t.name!r}")
        if t.name in self._targets:
            raise DuplicateTargetError(t.name)
        if not t.is_watch and not t.steps:
            raise ValueError(f"Target '{t.name}' has no steps")
        self._targets[t.name] = t
        return t

    def freeze(self) -> None:
        """Validate watch references and make the registry read-only."""
        for t in self._targets.values():
            if not t.is_watch:
                continue
            inner = self._targets.get(t.watch.of)
            if inner is None:
                raise UnknownTargetError(t.watch.of, known=self.names())
            if inner.is_watch:
                raise ValueError(
                    f"Watch target '{t.name}' refers to '{inner.name}', which is itself a watch target"
                )
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ---- lookup ----

    def get(self, name: str) -> Target:
        try:
            return self._targets[name]
        except KeyError:
            raise UnknownTargetError(name, known=self.names()) from None

    def lookup(self, name: str) -> Tuple[Step, ...]:
        """Return the target's steps in registration order."""
        return self.get(name).steps

    def resolve_watch(self, name: str) -> Tuple[Target, Target]:
        """Return (watch target, target it re-runs)."""
        t = self.get(name)
        if not t.is_watch:
            raise ValueError(f"Target '{name}' is not a watch target")
        return t, self.get(t.watch.of)

    def names(self) -> List[str]:
        return list(self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets.values())

    def __len__(self) -> int:
        return len(self._targets)


# ----------------------------------------------------------------------
# Targets file loading
# ----------------------------------------------------------------------

def load_targets(path: str | Path) -> TargetRegistry:
    """
    Load targets from a python file path.

    The file must define either:
      - get_targets() -> List[Target]
      - TARGETS = [Target, ...]
    """
    tf_path = Path(path).expanduser().resolve()
    if not tf_path.exists():
        raise TargetFileError(f"Targets file not found: {tf_path}")
    if tf_path.suffix != ".py":
        raise TargetFileError(f"Targets file must be a .py file, got: {tf_path.name}")

    module_name = f"taskline_targets_{tf_path.stem}"
    globals_dict = runpy.run_path(str(tf_path), run_name=module_name)

    items = None
    if "get_targets" in globals_dict and callable(globals_dict["get_targets"]):
        items = globals_dict["get_targets"]()
    elif "TARGETS" in globals_dict:
        items = globals_dict["TARGETS"]

    if not isinstance(items, list) or not all(isinstance(t, Target) for t in items):
        raise TargetFileError(
            f"{tf_path.name} must return/define a List[Target]. "
            "Define get_targets() -> List[Target] or TARGETS = [Target, ...]."
        )

    return TargetRegistry.from_targets(items)


# inputs of a cargo-web build; outputs such as target/ and the deploy zip stay unwatched
RUST_SOURCES = ("src/**", "static/**", "Cargo.toml", "Cargo.lock", "Web.toml")


def default_registry() -> TargetRegistry:
    """Built-in targets for a cargo-web project, used when no targets file exists."""
    return TargetRegistry.from_targets(
        targets(
            target(
                "deploy",
                sh("build", "cargo web deploy"),
                sh("package", "zip -r ludem_dare_45.zip *", cwd="target/deploy"),
                sh("copy-artifact", "cp target/deploy/ludem_dare_45.zip ."),
                requires=["cargo", "zip"],
                description="build for the web and package target/deploy into a zip",
            ),
            target("start", sh("serve", "cargo web start"), requires=["cargo"],
                   description="start the local dev server"),
            target("check", sh("check", "cargo check"), requires=["cargo"],
                   description="run static checks"),
            watch("recheck", of="check", paths=RUST_SOURCES),
            target("run", sh("run", "cargo run"), requires=["cargo"],
                   description="run the program"),
            watch("rerun", of="run", paths=RUST_SOURCES),
        )
    )
