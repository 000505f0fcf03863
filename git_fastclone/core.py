#!/usr/bin/env python3
"""
Reference repositories ("mirrors") shared by every clone on this machine.

Layout:
  <reference_dir>/<mirror key>                   bare mirror of one URL
  <reference_dir>/<mirror key>:submodules.txt    submodule URLs seen last time

Examples:
  https://github.com/numpy/numpy.git     -> github.com-numpy-numpy.git
  git@github.com:torvalds/linux.git      -> github.com-torvalds-linux.git
  ssh://git@github.com/torvalds/linux.git -> github.com-torvalds-linux.git

Notes:
- The scheme and any user@ prefix are dropped, so https and ssh URLs for the
  same repo share one mirror.
- Each mirror is cloned (if missing) and updated at most once per run, no
  matter how many threads ask for it.
- Locking is per process only. Two runs sharing a reference dir are not
  synchronized with each other.
"""

from __future__ import annotations
import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

from .execution import CommandRunner

logger = logging.getLogger(__name__)

SCHEME_RE = re.compile(r"^.*://")
USER_RE = re.compile(r"^[^@]*@")

# ':' never appears in a mirror key, so the manifest can't clash with a mirror dir
SUBMODULE_FILE_SUFFIX = ":submodules.txt"


def reference_repo_name(url: str) -> str:
    """
    Derive the mirror key (a single directory name) from a git URL.
    """
    name = SCHEME_RE.sub("", url, count=1)
    name = USER_RE.sub("", name, count=1)
    return name.replace("/", "-").replace(":", "-")


@dataclass
class ReferenceRepoState:
    updated: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)


class ReferenceRepoStore:
    """
    Owns the reference dir and the per-run state of every mirror in it.
    """

    def __init__(self, reference_dir: Path, runner: Optional[CommandRunner] = None) -> None:
        self.reference_dir = Path(reference_dir)
        self.reference_dir.mkdir(parents=True, exist_ok=True)
        self.run = runner or CommandRunner()
        # Called with the URL the first time a mirror is touched in this run
        self.on_first_touch: Optional[Callable[[str], None]] = None
        self._states: Dict[str, ReferenceRepoState] = {}
        self._states_lock = threading.Lock()

    def _state(self, url: str) -> ReferenceRepoState:
        key = reference_repo_name(url)
        with self._states_lock:
            state = self._states.get(key)
            if state is None:
                state = self._states[key] = ReferenceRepoState()
            return state

    def mirror_path(self, url: str) -> Path:
        return self.reference_dir / reference_repo_name(url)

    def submodule_file(self, url: str) -> Path:
        return self.reference_dir / (reference_repo_name(url) + SUBMODULE_FILE_SUFFIX)

    def updated(self, url: str) -> bool:
        return self._state(url).updated

    @contextmanager
    def lock(self, url: str) -> Iterator[None]:
        with self._state(url).lock:
            yield

    def ensure_fresh(self, url: str) -> Path:
        """
        Make sure the mirror for *url* exists and has been updated in this run.

        Concurrent callers for the same mirror block until the first one has
        finished, so clone and update run at most once per mirror per run.
        Returns the mirror path.
        """
        mirror = self.mirror_path(url)
        state = self._state(url)
        with state.lock:
            if not state.updated:
                if self.on_first_touch is not None:
                    self.on_first_touch(url)
                if not mirror.exists():
                    logger.info("Creating reference repo for %s at %s", url, mirror)
                    self.run("git", "clone", "--mirror", url, str(mirror))
                logger.info("Updating reference repo %s", mirror)
                self.run("git", "remote", "update", cwd=mirror)
                state.updated = True
        return mirror

    @contextmanager
    def with_git_mirror(self, url: str) -> Iterator[Path]:
        """
        Yield the directory of an up-to-date mirror for *url*.

        The mirror is not locked while the caller uses it; readers only add
        objects through --reference and never modify the mirror.
        """
        yield self.ensure_fresh(url)
