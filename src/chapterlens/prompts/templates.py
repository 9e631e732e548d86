"""Prompt construction for each analysis kind.

Templates live as YAML files beside this module so wording can be edited
without touching code. Each template supplies ``instructions`` and an
``output_format`` contract; the chapter text sits between them inside
literal triple-quote delimiters, which the budget fitter relies on.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import yaml

from chapterlens.models.base import AnalysisKind

TEXT_DELIMITER = '"""'

_TEMPLATES_DIR = Path(__file__).parent / "templates"


class PromptLibrary:
    """Loads and renders the YAML prompt templates."""

    def __init__(self, templates_dir: Path | None = None):
        self._templates_dir = templates_dir or _TEMPLATES_DIR
        self._templates: dict[str, dict] = {}
        self._load_templates()

    def _load_templates(self) -> None:
        if not self._templates_dir.exists():
            return
        for yaml_file in self._templates_dir.glob("*.yaml"):
            with open(yaml_file, encoding="utf-8") as f:
                self._templates[yaml_file.stem] = yaml.safe_load(f) or {}

    def get_template(self, name: str) -> dict:
        if name not in self._templates:
            raise KeyError(f"Template not found: {name}")
        return self._templates[name]

    def has_template(self, name: str) -> bool:
        return name in self._templates

    @staticmethod
    def render(template: dict, text: str, label: str = "Text excerpt:") -> str:
        instructions = str(template.get("instructions", "")).strip()
        output_format = str(template.get("output_format", "")).strip()
        return (
            f"{instructions}\n\n"
            f"{label}\n{TEXT_DELIMITER}\n{text}\n{TEXT_DELIMITER}\n\n"
            f"{output_format}"
        )

    def system_prompt(self) -> str:
        return str(self.get_template("system").get("role", "")).strip()

    def analysis_prompt(self, text: str, kind: AnalysisKind | str) -> str:
        try:
            kind = AnalysisKind(kind)
        except ValueError:
            return ""
        if not self.has_template(kind.value):
            return ""
        return self.render(self.get_template(kind.value), text)

    def language_prompts(self, sample: str) -> tuple[str, str]:
        """(system, user) prompts for language detection."""
        template = self.get_template("language")
        return (
            str(template.get("role", "")).strip(),
            self.render(template, sample, label="Text to analyze:"),
        )


@lru_cache(maxsize=1)
def default_library() -> PromptLibrary:
    return PromptLibrary()


def build_prompt(compressed_text: str, kind: AnalysisKind | str) -> str:
    """The full user prompt for ``kind``, or "" if the kind is unsupported."""
    return default_library().analysis_prompt(compressed_text, kind)


def system_prompt() -> str:
    return default_library().system_prompt()


def build_language_prompt(sample: str) -> tuple[str, str]:
    return default_library().language_prompts(sample)
