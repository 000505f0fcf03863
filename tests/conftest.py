from pathlib import Path
import sys
import threading
import time
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from git_fastclone.execution import CancelledError, CommandRunner, ExecutionError


class FakeGit(CommandRunner):
    """
    Stands in for git: records every command and fakes its effect on disk.

    *repos* maps a URL to its submodules as (relative path, url) pairs.
    """

    def __init__(self, repos: Optional[Dict[str, List[Tuple[str, str]]]] = None, delay: float = 0.0) -> None:
        super().__init__()
        self.repos = repos or {}
        self.delay = delay
        self.commands: List[Tuple[Tuple[str, ...], Optional[Path]]] = []
        self.failures: List[Tuple[Tuple[str, ...], Optional[Path], int]] = []
        self.holds: List[Tuple[str, ...]] = []
        self.checkouts: Dict[Path, str] = {}
        self._lock = threading.Lock()

    def fail_on(self, prefix: Sequence[str], returncode: int, cwd: Optional[Path] = None) -> None:
        self.failures.append((tuple(prefix), Path(cwd).resolve() if cwd else None, returncode))

    def hold_until_cancelled(self, prefix: Sequence[str]) -> None:
        """Commands matching *prefix* don't finish until the run is cancelled."""
        self.holds.append(tuple(prefix))

    def calls(self, *prefix: str) -> List[Tuple[str, ...]]:
        with self._lock:
            return [cmd for cmd, _ in self.commands if cmd[: len(prefix)] == prefix]

    def __call__(self, *cmd, cwd=None) -> str:
        if self.cancel_event.is_set():
            raise CancelledError("cancelled")
        cmd = tuple(str(c) for c in cmd)
        cwd = Path(cwd).resolve() if cwd else None
        with self._lock:
            self.commands.append((cmd, cwd))
        for prefix, fail_cwd, code in self.failures:
            if cmd[: len(prefix)] == prefix and fail_cwd in (None, cwd):
                raise ExecutionError(cmd, code, "boom\n")
        if any(cmd[: len(prefix)] == prefix for prefix in self.holds):
            assert self.cancel_event.wait(5)
        return self._simulate(cmd, cwd)

    def _checkout(self, url: str, dest: Path) -> None:
        dest.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self.checkouts[dest.resolve()] = url
        if self.repos.get(url):
            (dest / ".gitmodules").write_text("[submodule]\n", encoding="utf-8")

    def _simulate(self, cmd: Tuple[str, ...], cwd: Optional[Path]) -> str:
        args = cmd[1:]
        if args[:2] == ("clone", "--mirror"):
            time.sleep(self.delay)
            Path(args[3]).mkdir(parents=True)
        elif args[:2] == ("remote", "update"):
            time.sleep(self.delay)
        elif args[:2] == ("clone", "--reference"):
            self._checkout(args[3], Path(args[4]))
        elif args[:2] == ("submodule", "init"):
            url = self.checkouts[cwd]
            return "".join(
                f"Submodule '{path}' ({sub_url}) registered for path '{path}'\n"
                for path, sub_url in self.repos.get(url, [])
            )
        elif args[:2] == ("submodule", "update"):
            path = Path(args[4])
            parent_url = self.checkouts[cwd]
            sub_url = dict(self.repos[parent_url])[str(path.relative_to(cwd))]
            self._checkout(sub_url, path)
        return ""


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()
