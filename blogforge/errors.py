from __future__ import annotations

from pathlib import Path


class SiteError(Exception):
    """Base class for every error raised by the build pipeline."""


class ContentParseError(SiteError):
    def __init__(self, path: Path | str, cause: str) -> None:
        self.path = str(path)
        self.cause = cause
        super().__init__(f"{self.path}: {cause}")


class ConfigurationError(SiteError, ValueError):
    def __init__(self, message: str, source: Path | str | None = None) -> None:
        self.source = str(source) if source is not None else None
        if self.source:
            message = f"{self.source}: {message}"
        super().__init__(message)


class TemplateError(SiteError):
    def __init__(self, message: str, template: str | None = None) -> None:
        self.template = template
        if template:
            message = f"template '{template}': {message}"
        super().__init__(message)


class OutputCollisionError(SiteError):
    def __init__(self, path: str, first: str, second: str) -> None:
        self.path = path
        self.first = first
        self.second = second
        super().__init__(f"output path {path} is produced by both {first} and {second}")
