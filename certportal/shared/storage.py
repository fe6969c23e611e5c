import os
import tempfile

from flask import current_app


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def site_root() -> str:
    return current_app.config.get("SITE_ROOT", "/srv")


def resolve_site_path(ref: str | None) -> str | None:
    """Absolute path for a stored reference, refusing paths outside SITE_ROOT."""
    if not ref:
        return None
    root = os.path.realpath(site_root())
    candidate = os.path.realpath(os.path.join(root, ref.lstrip("/")))
    if candidate != root and not candidate.startswith(root + os.sep):
        return None
    return candidate
