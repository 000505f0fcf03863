#!/usr/bin/env python3
"""Background warming of submodule mirrors we have needed before."""

from __future__ import annotations
import logging
import threading
from typing import Any, Callable, List, Optional

from .core import ReferenceRepoStore
from .execution import CancelledError
from .submodules import SubmoduleManifest

logger = logging.getLogger(__name__)


class Supervisor:
    """
    Runs unjoined background tasks and collects their failures.

    The first exception raised by a task is kept and the cancel event is set,
    which stops the shared CommandRunner from starting new commands. The
    foreground calls raise_if_failed() to surface the error.
    """

    def __init__(self, cancel_event: Optional[threading.Event] = None) -> None:
        self.cancel_event = cancel_event or threading.Event()
        self.error: Optional[BaseException] = None
        self._lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    def spawn(self, fn: Callable[..., Any], *args: Any, name: Optional[str] = None) -> threading.Thread:
        t = threading.Thread(target=self._supervise, args=(fn, args), name=name, daemon=True)
        # Started under the lock so join() never sees it registered but not yet alive
        with self._lock:
            self._threads.append(t)
            t.start()
        return t

    def _supervise(self, fn: Callable[..., Any], args: tuple) -> None:
        try:
            fn(*args)
        except CancelledError:
            logger.debug("Background task %s skipped, run was cancelled", threading.current_thread().name)
        except Exception as e:
            self.fail(e)

    def fail(self, error: BaseException) -> None:
        with self._lock:
            if self.error is None:
                self.error = error
                logger.error("Background task failed: %s", error)
        self.cancel_event.set()

    def raise_if_failed(self) -> None:
        if self.error is not None:
            raise self.error

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for every task spawned so far (and any they spawned)."""
        while True:
            with self._lock:
                pending = [t for t in self._threads if t.is_alive()]
            if not pending:
                return
            for t in pending:
                t.join(timeout)
            if timeout is not None:
                return


class Prefetcher:
    """
    Starts mirror updates for the submodule URLs listed in a mirror's manifest.

    Nothing here is waited on. A manifest that is missing or stale (e.g. still
    being written by this very run) simply means less gets prefetched.
    """

    def __init__(self, store: ReferenceRepoStore, manifest: SubmoduleManifest, supervisor: Supervisor) -> None:
        self.store = store
        self.manifest = manifest
        self.supervisor = supervisor

    def prefetch(self, url: str) -> List[str]:
        urls = self.manifest.read(url)
        for nested_url in urls:
            logger.debug("Prefetching reference repo for %s (needed by %s)", nested_url, url)
            self.supervisor.spawn(self.store.ensure_fresh, nested_url, name=f"prefetch:{nested_url}")
        return urls
