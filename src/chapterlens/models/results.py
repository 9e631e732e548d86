"""Analysis result types.

One frozen dataclass per analysis kind, plus ``UnparsedResult`` for model
replies that could not be read as the expected structure. Callers must
handle ``UnparsedResult`` explicitly; it carries the raw reply text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from chapterlens.models.base import AnalysisKind


@dataclass(frozen=True)
class Character:
    name: str
    description: str = ""
    importance: str = ""  # Primary, Secondary, Minor


@dataclass(frozen=True)
class Theme:
    theme: str
    description: str = ""


@dataclass(frozen=True)
class GraphNode:
    id: str
    name: str
    group: str = ""
    importance: float = 0.0


@dataclass(frozen=True)
class GraphLink:
    source: str
    target: str
    type: str = ""
    strength: float = 0.0
    sentiment: float = 0.0


@dataclass(frozen=True)
class CharactersResult:
    characters: tuple[Character, ...]
    kind: AnalysisKind = AnalysisKind.CHARACTERS

    def to_payload(self) -> list[dict]:
        return [
            {"name": c.name, "description": c.description, "importance": c.importance}
            for c in self.characters
        ]


@dataclass(frozen=True)
class SummaryResult:
    text: str
    kind: AnalysisKind = AnalysisKind.SUMMARY

    def to_payload(self) -> str:
        return self.text


@dataclass(frozen=True)
class SentimentResult:
    overall: str
    beginning: str = ""
    middle: str = ""
    end: str = ""
    analysis: str = ""
    kind: AnalysisKind = AnalysisKind.SENTIMENT

    def to_payload(self) -> dict:
        return {
            "overall": self.overall,
            "beginning": self.beginning,
            "middle": self.middle,
            "end": self.end,
            "analysis": self.analysis,
        }


@dataclass(frozen=True)
class ThemesResult:
    themes: tuple[Theme, ...]
    kind: AnalysisKind = AnalysisKind.THEMES

    def to_payload(self) -> list[dict]:
        return [{"theme": t.theme, "description": t.description} for t in self.themes]


@dataclass(frozen=True)
class CharacterGraphResult:
    nodes: tuple[GraphNode, ...]
    links: tuple[GraphLink, ...]
    kind: AnalysisKind = AnalysisKind.CHARACTER_GRAPH

    def to_payload(self) -> dict:
        return {
            "nodes": [
                {"id": n.id, "name": n.name, "group": n.group, "importance": n.importance}
                for n in self.nodes
            ],
            "links": [
                {
                    "source": link.source,
                    "target": link.target,
                    "type": link.type,
                    "strength": link.strength,
                    "sentiment": link.sentiment,
                }
                for link in self.links
            ],
        }


@dataclass(frozen=True)
class UnparsedResult:
    """A structured analysis whose reply could not be parsed."""

    raw: str
    kind: AnalysisKind

    def to_payload(self) -> str:
        return self.raw


AnalysisResult = Union[
    CharactersResult,
    SummaryResult,
    SentimentResult,
    ThemesResult,
    CharacterGraphResult,
    UnparsedResult,
]


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _number(value: object) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0


def _characters(payload: object) -> CharactersResult | None:
    if not isinstance(payload, list):
        return None
    items = []
    for entry in payload:
        if not isinstance(entry, dict) or not _text(entry.get("name")):
            return None
        items.append(Character(
            name=_text(entry.get("name")),
            description=_text(entry.get("description")),
            importance=_text(entry.get("importance")),
        ))
    return CharactersResult(characters=tuple(items))


def _themes(payload: object) -> ThemesResult | None:
    if not isinstance(payload, list):
        return None
    items = []
    for entry in payload:
        if not isinstance(entry, dict) or not _text(entry.get("theme")):
            return None
        items.append(Theme(
            theme=_text(entry.get("theme")),
            description=_text(entry.get("description")),
        ))
    return ThemesResult(themes=tuple(items))


def _sentiment(payload: object) -> SentimentResult | None:
    if not isinstance(payload, dict) or "overall" not in payload:
        return None
    return SentimentResult(
        overall=_text(payload.get("overall")),
        beginning=_text(payload.get("beginning")),
        middle=_text(payload.get("middle")),
        end=_text(payload.get("end")),
        analysis=_text(payload.get("analysis")),
    )


def _graph(payload: object) -> CharacterGraphResult | None:
    if not isinstance(payload, dict):
        return None
    raw_nodes = payload.get("nodes")
    raw_links = payload.get("links", [])
    if not isinstance(raw_nodes, list) or not isinstance(raw_links, list):
        return None

    nodes = []
    for entry in raw_nodes:
        if not isinstance(entry, dict) or not _text(entry.get("id")):
            return None
        node_id = _text(entry.get("id"))
        nodes.append(GraphNode(
            id=node_id,
            name=_text(entry.get("name")) or node_id,
            group=_text(entry.get("group")),
            importance=_number(entry.get("importance")),
        ))

    links = []
    for entry in raw_links:
        if not isinstance(entry, dict):
            return None
        source, target = _text(entry.get("source")), _text(entry.get("target"))
        if not source or not target:
            return None
        links.append(GraphLink(
            source=source,
            target=target,
            type=_text(entry.get("type")),
            strength=_number(entry.get("strength")),
            sentiment=_number(entry.get("sentiment")),
        ))
    return CharacterGraphResult(nodes=tuple(nodes), links=tuple(links))


_BUILDERS = {
    AnalysisKind.CHARACTERS: _characters,
    AnalysisKind.THEMES: _themes,
    AnalysisKind.SENTIMENT: _sentiment,
    AnalysisKind.CHARACTER_GRAPH: _graph,
}


def result_from_payload(kind: AnalysisKind, payload: object) -> AnalysisResult | None:
    """Build the typed result for ``kind``, or None if the shape is wrong."""
    if kind is AnalysisKind.SUMMARY:
        return SummaryResult(text=payload) if isinstance(payload, str) else None
    return _BUILDERS[kind](payload)
