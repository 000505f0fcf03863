from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

CONFIG_FILENAME = ".git-fastclone.conf"
SECTION = "git-fastclone"

DEFAULT_REFERENCE_DIR = Path("/var/tmp/git-fastclone/reference")
REFERENCE_DIR_ENV = "REFERENCE_REPO_DIR"
PREFETCH_ENV = "GIT_FASTCLONE_PREFETCH"


@dataclass
class Settings:
    reference_dir: Path = DEFAULT_REFERENCE_DIR
    prefetch_submodules: bool = True
    # Threads per submodule level; None means one per submodule
    max_workers: Optional[int] = None


def config_path(reference_dir: Path) -> Path:
    """Return the path to the config file inside *reference_dir*."""
    return reference_dir / CONFIG_FILENAME


def load_config(reference_dir: Path) -> ConfigParser:
    """Load configuration from *reference_dir*.

    If the file does not exist an empty ConfigParser is returned.
    """
    cfg = ConfigParser()
    path = config_path(reference_dir)
    if path.exists():
        cfg.read(path)
    return cfg


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment and the reference dir's config file.

    Precedence (highest first): environment, config file, defaults.
    """
    env = os.environ if environ is None else environ
    reference_dir = Path(env.get(REFERENCE_DIR_ENV) or DEFAULT_REFERENCE_DIR)
    settings = Settings(reference_dir=reference_dir)

    cfg = load_config(reference_dir)
    if cfg.has_section(SECTION):
        settings.prefetch_submodules = cfg.getboolean(
            SECTION, "prefetch_submodules", fallback=settings.prefetch_submodules
        )
        max_workers = cfg.getint(SECTION, "max_workers", fallback=0)
        settings.max_workers = max_workers if max_workers > 0 else None

    if env.get(PREFETCH_ENV):
        settings.prefetch_submodules = _parse_bool(env[PREFETCH_ENV])
    return settings
