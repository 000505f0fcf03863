#!/usr/bin/env python3
"""
CLI for git_fastclone.

Usage:
  git-fastclone [-b REV] [-v] <url> [path]

Clones <url> into [path] (default: repo name from the URL) and updates all
submodules recursively, using reference repos under $REFERENCE_REPO_DIR
(default /var/tmp/git-fastclone/reference) for every fetch.

Examples:
  git-fastclone https://github.com/psf/requests.git
  REFERENCE_REPO_DIR=/srv/ref git-fastclone -b v2.31.0 git@github.com:psf/requests.git src/requests
"""

from __future__ import annotations
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .clone import FastClone, path_from_git_url
from .config import load_settings
from .execution import ExecutionError, FastCloneError
from .log import configure_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="git-fastclone",
        description="Clone a repository and its submodules using local reference repos.",
    )
    # A sha or tag works here too; we just run `git checkout` after cloning
    p.add_argument("-b", "--branch", default=None, help="Checkout this branch rather than the default")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every git command")
    p.add_argument("--no-prefetch", action="store_true", help="Don't prefetch or record submodule reference repos")
    p.add_argument("--wait-prefetch", action="store_true", help="Wait for background prefetches before exiting")
    p.add_argument("url", help="Git URL (ssh or https)")
    p.add_argument("path", nargs="?", default=None, help="Checkout directory (default: derived from the URL)")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    settings = load_settings()
    if args.no_prefetch:
        settings.prefetch_submodules = False

    try:
        dest = Path.cwd() / (args.path or path_from_git_url(args.url))
        fastclone = FastClone(settings)
        fastclone.clone(args.url, args.branch, dest)
        if args.wait_prefetch:
            fastclone.supervisor.join()
            fastclone.supervisor.raise_if_failed()
    except ExecutionError as e:
        logger.error("%s", e)
        if e.output:
            logger.error("%s", e.output.rstrip())
        return e.exit_code
    except FastCloneError as e:
        logger.error("%s", e)
        return e.exit_code
    except (OSError, ValueError) as e:
        # Missing git binary, unwritable reference dir, unusable URL
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
