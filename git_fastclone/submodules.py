#!/usr/bin/env python3
"""Submodule discovery, the per-mirror submodule manifest, and the parallel walk."""

from __future__ import annotations
import logging
import re
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .core import ReferenceRepoStore
from .execution import CancelledError, CommandRunner

logger = logging.getLogger(__name__)

# Submodule path (not name) is in single quotes at the end of the line
_PATH_RE = re.compile(r"'([^']*)'$")
# URL is in parentheses
_URL_RE = re.compile(r"\(([^)]*)\)")


@dataclass(frozen=True)
class Submodule:
    path: Path
    url: str


def parse_submodule_init(output: str, parent_dir: Path) -> List[Submodule]:
    """
    Parse ``git submodule init`` output, e.g.:

      Submodule 'libs/foo' (https://example.com/foo.git) registered for path 'libs/foo'

    Output is stdout and stderr combined, so other lines (warnings, hints) can
    show up. Those are logged and skipped rather than guessed at.
    """
    submodules: List[Submodule] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        path_match = _PATH_RE.search(line)
        url_match = _URL_RE.search(line)
        if path_match is None or url_match is None:
            logger.warning("Ignoring unexpected `git submodule init` output in %s: %s", parent_dir, line)
            continue
        submodules.append(Submodule(path=parent_dir / path_match.group(1), url=url_match.group(1)))
    return submodules


class SubmoduleManifest:
    """
    The list of submodule URLs a mirror needed last time, stored next to it.
    """

    def __init__(self, store: ReferenceRepoStore, enabled: bool = True) -> None:
        self.store = store
        self.enabled = enabled

    def write(self, url: str, submodule_urls: Iterable[str]) -> None:
        urls = list(submodule_urls)
        if not urls or not self.enabled:
            return
        path = self.store.submodule_file(url)
        with self.store.lock(url):
            with path.open("w", encoding="utf-8") as fh:
                for submodule_url in urls:
                    fh.write(f"{submodule_url}\n")
        logger.debug("Recorded %d submodule(s) for %s in %s", len(urls), url, path)

    def read(self, url: str) -> List[str]:
        # Not locked: ensure_fresh calls this while already holding the mirror's lock
        path = self.store.submodule_file(url)
        if not path.exists():
            return []
        lines = path.read_text(encoding="utf-8").splitlines()
        return [line.strip() for line in lines if line.strip()]


class SubmoduleWalker:
    """
    Updates the submodules of a checkout recursively, one thread per submodule.

    Every call waits for the branches it started, so when the top-level call
    returns the whole tree is done. The first failing branch cancels the run:
    the shared runner stops starting new commands everywhere.
    """

    def __init__(
        self,
        store: ReferenceRepoStore,
        manifest: SubmoduleManifest,
        runner: Optional[CommandRunner] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.store = store
        self.manifest = manifest
        self.run = runner or store.run
        self.max_workers = max_workers

    def update_submodules(self, checkout_dir: Path, url: str) -> None:
        # Submodule paths are joined onto this and also run with cwd=checkout_dir
        checkout_dir = Path(checkout_dir).resolve()
        if not (checkout_dir / ".gitmodules").exists():
            return

        output = self.run("git", "submodule", "init", cwd=checkout_dir)
        submodules = parse_submodule_init(output, checkout_dir)
        self.manifest.write(url, [s.url for s in submodules])
        if not submodules:
            return

        workers = len(submodules)
        if self.max_workers:
            workers = min(workers, self.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="submodule") as pool:
            futures = [pool.submit(self._update_one, checkout_dir, s) for s in submodules]
            wait(futures)

        errors = [f.exception() for f in futures if f.exception() is not None]
        if errors:
            # Prefer the real failure over siblings that were cancelled because of it
            real = [e for e in errors if not isinstance(e, CancelledError)]
            raise (real or errors)[0]

    def _update_one(self, checkout_dir: Path, submodule: Submodule) -> None:
        try:
            with self.store.with_git_mirror(submodule.url) as mirror:
                self.run(
                    "git", "submodule", "update", "--reference", str(mirror), str(submodule.path),
                    cwd=checkout_dir,
                )
            self.update_submodules(submodule.path, submodule.url)
        except CancelledError:
            raise
        except Exception as e:
            cancel_event = self.run.cancel_event
            if not cancel_event.is_set():
                logger.error("Updating submodule %s (%s) failed: %s", submodule.path, submodule.url, e)
                cancel_event.set()
            raise
