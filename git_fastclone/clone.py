#!/usr/bin/env python3
"""Top-level checkout: main repo against its mirror, then every submodule."""

from __future__ import annotations
import logging
import re
import time
from pathlib import Path
from typing import Optional

from .config import Settings
from .core import ReferenceRepoStore
from .execution import CommandRunner, FastCloneError
from .prefetch import Prefetcher, Supervisor
from .submodules import SubmoduleManifest, SubmoduleWalker

logger = logging.getLogger(__name__)

_REPO_NAME_RE = re.compile(r"([^/:]*?)(?:\.git)?$")


def path_from_git_url(url: str) -> str:
    """
    Checkout directory name from the tail end of the URL, minus ``.git``.
    """
    m = _REPO_NAME_RE.search(url.rstrip("/"))
    if m is None or not m.group(1):
        raise ValueError(f"Cannot derive a checkout path from URL: {url}")
    return m.group(1)


class FastClone:
    """
    Wires the mirror store, manifest, prefetcher and submodule walker for one run.
    """

    def __init__(self, settings: Settings, runner: Optional[CommandRunner] = None) -> None:
        self.settings = settings
        self.supervisor = Supervisor()
        if runner is None:
            runner = CommandRunner(self.supervisor.cancel_event)
        else:
            runner.cancel_event = self.supervisor.cancel_event
        self.run = runner
        self.store = ReferenceRepoStore(settings.reference_dir, runner)
        self.manifest = SubmoduleManifest(self.store, enabled=settings.prefetch_submodules)
        self.prefetcher = Prefetcher(self.store, self.manifest, self.supervisor)
        if settings.prefetch_submodules:
            self.store.on_first_touch = self.prefetcher.prefetch
        self.walker = SubmoduleWalker(
            self.store, self.manifest, runner, settings.max_workers
        )

    def clone(self, url: str, rev: Optional[str], dest_dir: Path) -> float:
        """
        Check out *url* into *dest_dir* (at *rev* if given) with all submodules,
        using reference repos everywhere. Returns the elapsed seconds.
        """
        initial_time = time.monotonic()
        dest_dir = Path(dest_dir)
        try:
            with self.store.with_git_mirror(url) as mirror:
                self.run("git", "clone", "--reference", str(mirror), url, str(dest_dir))

            # Only checkout if we're changing to a non-default branch
            if rev:
                self.run("git", "checkout", rev, cwd=dest_dir)

            self.walker.update_submodules(dest_dir, url)
        except FastCloneError:
            # A background failure may be what cancelled us; report that one
            self.supervisor.raise_if_failed()
            raise
        self.supervisor.raise_if_failed()

        elapsed = time.monotonic() - initial_time
        logger.info("Checkout of %s took %.2fs", url, elapsed)
        return elapsed
