"""Project name resolution for hooks that are not told their project."""

import os
import subprocess


def git_toplevel_name(path: str) -> str | None:
    """Name of the git repository containing ``path`` (its top-level basename).

    Args:
        path: A file or directory inside the repository.

    Returns:
        Repository directory name, or None if not inside a git repo.
    """
    if not path:
        return None

    directory = path if os.path.isdir(path) else os.path.dirname(path)
    try:
        result = subprocess.run(
            ["git", "-C", directory or ".", "rev-parse", "--show-toplevel"],
            capture_output=True, text=True, timeout=2
        )
        if result.returncode == 0:
            top = result.stdout.strip()
            return os.path.basename(top) or None
    except (subprocess.TimeoutExpired, FileNotFoundError, NotADirectoryError):
        pass
    return None


def cwd_name(cwd: str) -> str | None:
    """Basename of a working directory, e.g. '/home/me/app' -> 'app'."""
    if not cwd:
        return None
    return os.path.basename(cwd.rstrip("/")) or None
