# taskline_targets.py
# Targets for a cargo-web game: web deploy + zip, dev server, checks and run,
# each with a watch variant for the edit loop.
from __future__ import annotations

from taskline.dsl import sh, target, targets, watch

RUST_SOURCES = ["src/**", "static/**", "Cargo.toml", "Cargo.lock", "Web.toml"]

TARGETS = targets(
    target(
        "deploy",
        sh("build", "cargo web deploy"),
        sh("package", "zip -r ludem_dare_45.zip *", cwd="target/deploy"),
        sh("copy-artifact", "cp target/deploy/ludem_dare_45.zip ."),
        requires=["cargo", "zip"],
        description="build for the web and package target/deploy into a zip",
    ),
    target(
        "start",
        sh("serve", "cargo web start"),
        requires=["cargo"],
        description="start the local dev server",
    ),
    target(
        "check",
        sh("check", "cargo check"),
        requires=["cargo"],
        description="run static checks",
    ),
    watch("recheck", of="check", paths=RUST_SOURCES, policy="restart"),
    target(
        "run",
        sh("run", "cargo run"),
        requires=["cargo"],
        description="run the program",
    ),
    watch("rerun", of="run", paths=RUST_SOURCES, policy="restart"),
)
