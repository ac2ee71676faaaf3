"""File-pattern categories that associate changed files with task keywords."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator


class PatternLoadError(RuntimeError):
    """Raised when one or more pattern files cannot be parsed."""


class PatternCategory(BaseModel):
    """A class of files (tests, components, ...) and the task words it suggests."""

    name: str = Field(..., description="Stable identifier for the category.")
    pattern: str = Field(..., description="Regular expression matched against the relative path.")
    keywords: list[str] = Field(..., description="Task-text keywords that make a task a candidate.")
    weight: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="How strongly a match in this category suggests finished work.",
    )

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Pattern category name must not be empty")
        return normalized

    @field_validator("pattern")
    @classmethod
    def _validate_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid pattern regex: {exc}") from exc
        return value

    @field_validator("keywords", mode="before")
    @classmethod
    def _normalize_keywords(cls, value: Any):
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            raise TypeError("Keywords must be a sequence of strings")
        keywords = [str(item).strip().lower() for item in value if str(item).strip()]
        if not keywords:
            raise ValueError("At least one keyword is required")
        return keywords

    def matches(self, relative_path: str) -> bool:
        return re.search(self.pattern, relative_path, flags=re.IGNORECASE) is not None


DEFAULT_CATEGORIES: tuple[PatternCategory, ...] = (
    PatternCategory(
        name="tests",
        pattern=r"(test|spec)[^/]*\.(js|ts|jsx|tsx|py)$",
        keywords=["test", "testing", "spec", "unit"],
        weight=0.9,
    ),
    PatternCategory(
        name="components",
        pattern=r"component[^/]*\.(jsx|tsx|vue)$",
        keywords=["component", "ui", "interface", "frontend"],
        weight=0.8,
    ),
    PatternCategory(
        name="api",
        pattern=r"api[^/]*\.(js|ts|py)$",
        keywords=["api", "endpoint", "backend", "server"],
        weight=0.8,
    ),
    PatternCategory(
        name="config",
        pattern=r"\.config\.(js|ts|json)$|(^|/)(pyproject\.toml|setup\.cfg|package\.json)$",
        keywords=["config", "setup", "configuration"],
        weight=0.7,
    ),
    PatternCategory(
        name="docs",
        pattern=r"(^|/)readme(\.[a-z]+)?$|(^|/)docs?/[^/]+\.(md|rst)$",
        keywords=["document", "documentation", "readme"],
        weight=0.6,
    ),
)


def _documents_from_yaml(document: Any) -> list[Any]:
    if document is None:
        return []
    if isinstance(document, dict) and "categories" in document:
        document = document["categories"]
    if isinstance(document, dict):
        return [document]
    if isinstance(document, list):
        return document
    raise TypeError("Pattern file must contain a category, a list, or a 'categories' mapping")


class PatternLoader:
    """Loads pattern categories from YAML files layered over the built-in set."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> list[PatternCategory]:
        """Return built-in categories merged with those found on disk.

        Later search paths override earlier ones (and the built-ins) when
        category names collide; new names are appended in discovery order.
        """

        categories: dict[str, PatternCategory] = {category.name: category for category in DEFAULT_CATEGORIES}
        errors: list[str] = []

        for base in self._search_paths:
            files = [base] if base.is_file() else sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml"))
            for path in files:
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                try:
                    entries = _documents_from_yaml(document)
                except TypeError as exc:
                    errors.append(f"{path}: {exc}")
                    continue

                for entry in entries:
                    try:
                        category = PatternCategory.model_validate(entry)
                    except ValidationError as exc:
                        errors.append(f"Pattern validation error in {path}: {exc}")
                        continue
                    categories[category.name] = category

        if errors:
            raise PatternLoadError("; ".join(errors))

        return list(categories.values())


def load_patterns(search_paths: Iterable[Path] | None = None) -> list[PatternCategory]:
    """Convenience wrapper for loading pattern categories from the provided paths."""

    return PatternLoader(search_paths).load_all()


__all__ = [
    "DEFAULT_CATEGORIES",
    "PatternCategory",
    "PatternLoadError",
    "PatternLoader",
    "load_patterns",
]
