"""Jinja2 rendering for the generated secret file and shell block."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
)

from .atomic import AtomicWriter


@dataclass(slots=True)
class TemplateEngine:
    """Render built-in templates, optionally shadowed by an override directory."""

    environment: Environment
    writer: AtomicWriter = field(default_factory=AtomicWriter)

    @classmethod
    def with_overrides(
        cls,
        override_dir: Path | None,
        *,
        writer: AtomicWriter | None = None,
    ) -> TemplateEngine:
        """Return an engine that prefers templates found in *override_dir*."""
        loaders = []
        if override_dir is not None and override_dir.is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("straylight", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        return cls(environment=environment, writer=writer or AtomicWriter())

    def render_to_string(self, name: str, context: Mapping[str, object]) -> str:
        """Render template *name* with *context*."""
        template = self.environment.get_template(name)
        return template.render(**context)

    def render_to_path(
        self,
        name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int,
    ) -> bool:
        """Render *name* into *destination*, returning ``True`` if content changed."""
        rendered = self.render_to_string(name, context)
        if destination.exists():
            current = destination.read_text(encoding="utf-8")
            if current == rendered and (destination.stat().st_mode & 0o777) == mode:
                return False
        self.writer.write(destination, mode, rendered)
        return True


__all__ = ["TemplateEngine"]
