# src/taskline/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .model import DEFAULT_IGNORES, Step, Target, WatchSpec
from .settings import WATCH_POLICIES


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Target helpers
# ---------------------------------------------------------------------

def target(
    name: str,
    *steps: Step,  # allow: target("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: target("x", steps_list=[...])
    cwd: str = ".",  # default cwd for steps missing cwd
    env: Optional[Dict[str, str]] = None,
    requires: Optional[Iterable[str]] = None,
    description: str | None = None,
) -> Target:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"target({name!r}) must have at least one step")

    return Target(
        name=name,
        steps=tuple(steps_final),
        cwd=cwd,
        # force values to str, they end up in a subprocess environment
        env={k: str(v) for k, v in (env or {}).items()},
        requires=tuple(requires or ()),
        description=description,
    )


def watch(
    name: str,
    of: str,
    *,
    paths: Optional[Iterable[str]] = None,
    ignore: Optional[Iterable[str]] = None,
    policy: str | None = None,
    debounce: float | None = None,
    description: str | None = None,
) -> Target:
    """
    Watch variant of another target: re-run `of` whenever files under the
    project root change.

    Example:
        watch("recheck", of="check", paths=["src/**", "Cargo.toml"])
    """
    if policy is not None and policy not in WATCH_POLICIES:
        raise ValueError(f"watch({name!r}): unknown policy {policy!r}, expected one of {WATCH_POLICIES}")
    spec = WatchSpec(
        of=of,
        paths=tuple(paths or ()),
        ignore=tuple(ignore) if ignore is not None else DEFAULT_IGNORES,
        policy=policy,
        debounce=debounce,
    )
    return Target(name=name, watch=spec, description=description or f"watch and re-run {of}")


# ---------------------------------------------------------------------
# Targets file helper
# ---------------------------------------------------------------------

def targets(*items: Target) -> List[Target]:
    """
    Targets file helper. Users can write:
        from taskline import targets, target, watch, sh

        TARGETS = targets(
            target("check", sh("cargo check", "cargo check")),
            watch("recheck", of="check"),
        )

    Or build them lazily:
        def get_targets():
            return targets(target(...), ...)
    """
    return list(items)
