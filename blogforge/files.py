from __future__ import annotations

import logging
import shutil
import typing as typ
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class HasContent(typ.Protocol):
    content: str


def list_files(root: Path, suffix: str | None = None) -> list[Path]:
    if not root.exists():
        return []
    files = [path for path in root.rglob("*") if path.is_file()]
    if suffix:
        files = [path for path in files if path.suffix.lower() == suffix]
    return sorted(files, key=lambda p: p.as_posix())


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def url_parts(url_path: str, source: str | None = None) -> list[str]:
    parts = [part for part in url_path.split("/") if part]
    if any(part in {".", ".."} for part in parts):
        raise ConfigurationError(f"output path escapes the output directory: {url_path}", source)
    return parts


def output_file_path(output_dir: Path, url_path: str) -> Path:
    parts = url_parts(url_path)
    if url_path.endswith("/"):
        parts.append("index.html")
    return output_dir.joinpath(*parts)


def write_output(output: typ.Mapping[str, HasContent], output_dir: Path) -> list[Path]:
    written = []
    for url_path, item in output.items():
        target = output_file_path(output_dir, url_path)
        write_text(target, item.content)
        written.append(target)
    logger.info("Wrote %d files to %s", len(written), output_dir)
    return written


def copy_static(static_dir: Path, output_dir: Path, reserved: typ.Collection[Path] = ()) -> int:
    """Copy static assets, leaving generated files in ``reserved`` untouched."""
    copied = 0
    for source in list_files(static_dir):
        dest = output_dir / source.relative_to(static_dir)
        if dest in reserved:
            logger.warning("Static file %s would overwrite a generated page, skipped", source)
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        copied += 1
    return copied


def clean_output_dir(output_dir: Path, project_root: Path) -> None:
    if not output_dir.exists():
        return
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise ConfigurationError(f"refusing to clean project root {root_resolved}")
    if not output_resolved.is_relative_to(root_resolved):
        raise ConfigurationError(
            f"refusing to clean output directory {output_resolved} outside {root_resolved}"
        )
    shutil.rmtree(output_dir)
