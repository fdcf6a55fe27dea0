"""Export and import of engine configuration documents.

Document shape (camelCase JSON)::

    {
      "metadata": {"exportedAt": "...", "version": "1.0.0"},
      "config": {"template": {...}, "slots": [...], "injectionStrategy": {...}, "compressionStrategy": {...}},
      "history": [...],
      "presets": [...]
    }

``template``, ``slots``, ``injectionStrategy`` and ``compressionStrategy`` may also appear at the
top level instead of under ``config``. Exports round-trip losslessly except for
``custom`` validation callables, which are never serialized.
"""

import json
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field

from prompt_engine._base import EngineModel
from prompt_engine.cache import Clock
from prompt_engine.compiler.types import PromptTemplate
from prompt_engine.compression.types import CompressionStrategy
from prompt_engine.slots.types import InjectionStrategy, SlotDefinition

EXPORT_VERSION = "1.0.0"


class ExportMetadata(EngineModel):
    exported_at: str
    version: str = EXPORT_VERSION


class EngineConfig(EngineModel):
    """A template and/or slot set with the strategies to compile it."""

    template: PromptTemplate | None = None
    slots: tuple[SlotDefinition, ...] = ()
    injection_strategy: InjectionStrategy | None = None
    compression_strategy: CompressionStrategy | None = None

    def effective_template(self) -> PromptTemplate | None:
        """The template, with top-level ``slots`` taking precedence over the template's own."""
        if self.template is None or not self.slots:
            return self.template
        return self.template.model_copy(update={"slots": self.slots})


class ConfigPreset(EngineModel):
    id: str
    name: str
    description: str = ""
    type: Literal["slot", "compression", "injection", "complete"] = "complete"
    category: str = ""
    is_built_in: bool = False
    config: EngineConfig = Field(default_factory=EngineConfig)


class ConfigDocument(EngineModel):
    metadata: ExportMetadata | None = None
    config: EngineConfig | None = None
    template: PromptTemplate | None = None
    slots: tuple[SlotDefinition, ...] = ()
    injection_strategy: InjectionStrategy | None = None
    compression_strategy: CompressionStrategy | None = None
    history: tuple[dict[str, Any], ...] = ()
    presets: tuple[ConfigPreset, ...] = ()

    def resolved_config(self) -> EngineConfig:
        """Merge ``config`` with top-level keys; top-level keys fill gaps left by ``config``."""
        base = self.config or EngineConfig()
        return base.model_copy(
            update={
                "template": base.template or self.template,
                "slots": base.slots or self.slots,
                "injection_strategy": base.injection_strategy or self.injection_strategy,
                "compression_strategy": base.compression_strategy or self.compression_strategy,
            }
        )


def _timestamp(clock: Clock) -> str:
    return datetime.fromtimestamp(clock(), tz=UTC).isoformat()


def export_config(
    config: EngineConfig,
    *,
    history: Sequence[dict[str, Any]] = (),
    presets: Sequence[ConfigPreset] = (),
    clock: Clock = time.time,
) -> str:
    """Serialize ``config`` to the JSON document shape."""
    document = ConfigDocument(
        metadata=ExportMetadata(exported_at=_timestamp(clock)),
        config=config,
        history=tuple(history),
        presets=tuple(presets),
    )
    return json.dumps(document.to_json_dict(), indent=2, ensure_ascii=False)


def import_config(data: str) -> ConfigDocument:
    """Parse a JSON document produced by ``export_config`` (or written by hand).

    Raises:
        pydantic.ValidationError: If the document does not match the shape.
    """
    return ConfigDocument.model_validate_json(data)


def load_config_file(path: str | Path) -> ConfigDocument:
    """Load a configuration document from a ``.json`` or ``.yaml``/``.yml`` file."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        return ConfigDocument.model_validate(yaml.safe_load(text) or {})
    return import_config(text)


__all__ = ["EXPORT_VERSION", "ConfigDocument", "ConfigPreset", "EngineConfig", "ExportMetadata", "export_config", "import_config", "load_config_file"]
