"""Filesystem helpers: creating directories and unpacking UI archives."""

from __future__ import annotations

import io
import shutil
import zipfile
from pathlib import Path

from .errors import FileSystemError


def path_exists(path) -> bool:
    """Whether ``path`` exists."""
    return Path(path).exists()


def create_dir_if_necessary(path) -> None:
    """Create ``path`` and its parents unless it already exists."""
    path = Path(path)
    if path_exists(path):
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise FileSystemError(repr(err)) from err


def _enclosed_name(name: str) -> Path | None:
    """The relative path of an archive entry, or None if it would escape the target."""
    if "\0" in name or name.startswith(("/", "\\")):
        return None
    parts: list[str] = []
    for part in name.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                return None
            parts.pop()
        else:
            parts.append(part)
    return Path(*parts) if parts else Path()


def unzip_file(source, outpath) -> None:
    """Extract a zip archive into ``outpath``.

    ``source`` is a path, a binary file object or the archive's bytes.
    Entries whose names would land outside ``outpath`` are skipped.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    outpath = Path(outpath)
    with zipfile.ZipFile(source) as archive:
        for info in archive.infolist():
            relative = _enclosed_name(info.filename)
            if relative is None:
                continue
            target = outpath / relative
            if info.filename.endswith("/"):
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)


def extract_ui_zip(zip_bytes: bytes, out_path) -> Path:
    """Unpack UI archive bytes into a fresh ``ui`` folder under ``out_path``.

    Any existing ``ui`` folder is removed first. Returns the ``ui`` folder.
    """
    out_path = Path(out_path)
    try:
        create_dir_if_necessary(out_path)
    except FileSystemError as err:
        raise FileSystemError(f"Failed to create temporary directory: {err!r}") from err

    ui_folder = out_path / "ui"
    if path_exists(ui_folder):
        shutil.rmtree(ui_folder)
    try:
        ui_folder.mkdir()
    except OSError as err:
        raise FileSystemError(f"Failed to create ui directory: {err!r}") from err

    ui_zip_path = ui_folder / "ui.zip"
    try:
        ui_zip_path.write_bytes(bytes(zip_bytes))
    except OSError as err:
        raise FileSystemError(f"Error writing ui.zip: {err!r}") from err

    try:
        unzip_file(ui_zip_path, ui_folder)
    except (zipfile.BadZipFile, OSError) as err:
        raise FileSystemError(f"Could not unzip ui.zip: {err!r}") from err

    try:
        ui_zip_path.unlink()
    except OSError as err:
        raise FileSystemError(f"Failed to remove ui.zip: {err!r}") from err
    return ui_folder