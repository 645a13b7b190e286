"""Site content written for content servers and static sites."""

from __future__ import annotations

from pathlib import Path

from stackdeck.lib.errors import DeploymentError


def site_dir_for(sites_dir: Path, name: str) -> Path:
    """Return the directory for a site name.

    Raises:
        DeploymentError: If the name would escape ``sites_dir``
    """
    if not name or name in (".", "..") or Path(name).name != name:
        raise DeploymentError(
            operation="materialize",
            message=f"Invalid site name {name!r}: must be a single path component",
        )
    return sites_dir / name


def write_site(sites_dir: Path, name: str, content: str) -> Path:
    """Write ``content`` as ``<sites_dir>/<name>/index.html``.

    Returns:
        Path of the written index file

    Raises:
        DeploymentError: If the name is invalid or the file cannot be written
    """
    site_dir = site_dir_for(sites_dir, name)
    index_path = site_dir / "index.html"
    try:
        site_dir.mkdir(parents=True, exist_ok=True)
        index_path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise DeploymentError(
            operation="materialize",
            message=f"Failed to write site content to {index_path}: {exc}",
        ) from exc
    return index_path
