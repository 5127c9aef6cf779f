"""Utility functions for the provisioning tool."""
import logging
import os
import shutil
from string import Template
from typing import Mapping, Optional


def command_exists(command: str) -> bool:
    """Check if a command exists in the system PATH."""
    return shutil.which(command) is not None


def expand_path(path: str, env: Optional[Mapping[str, str]] = None) -> str:
    """Expand `~` and `$VARS` in a path against the given environment."""
    env = os.environ if env is None else env
    home = env.get('HOME', '')
    if path.startswith('~') and home:
        path = home + path[1:]
    return Template(path).safe_substitute(env)


def split_csv(value: Optional[str]) -> list:
    """Split a comma separated flag value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def log_info(message: str) -> None:
    """Log an informational message."""
    print(f"[INFO] {message}")


def log_action(message: str) -> None:
    """Log an action being performed."""
    print(f"  -> {message}")


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration.

    Verbose mode surfaces the commands `sh` runs along with the module loggers.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
    if not verbose:
        logging.getLogger('sh').setLevel(logging.WARNING)
