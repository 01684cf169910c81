"""Ordered extractor chains used to normalise heterogeneous agent responses.

Each concept (content, insights, citations, title) has a list of named
extractors tried in priority order; the first one that yields a non-empty,
well-typed value wins. Adding support for a new upstream shape means adding
one entry to a chain, not another branch in the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Extractor(Generic[T]):
    name: str
    extract: Callable[[Mapping[str, Any]], T | None]
    path: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Extraction(Generic[T]):
    value: T
    source: str


def _dig(payload: Mapping[str, Any], *path: str) -> Any:
    current: Any = payload
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _mapping_at(*path: str) -> Callable[[Mapping[str, Any]], dict[str, Any] | None]:
    def _extract(payload: Mapping[str, Any]) -> dict[str, Any] | None:
        value = _dig(payload, *path)
        if isinstance(value, Mapping) and value:
            return dict(value)
        return None

    return _extract


def _strings_at(*path: str) -> Callable[[Mapping[str, Any]], list[str] | None]:
    def _extract(payload: Mapping[str, Any]) -> list[str] | None:
        value = _dig(payload, *path)
        if not isinstance(value, list):
            return None
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append(item.strip())
            elif isinstance(item, Mapping):
                text = item.get("text") or item.get("insight") or item.get("claim")
                if isinstance(text, str) and text.strip():
                    items.append(text.strip())
        return items or None

    return _extract


def _citations_at(*path: str) -> Callable[[Mapping[str, Any]], list[Any] | None]:
    def _extract(payload: Mapping[str, Any]) -> list[Any] | None:
        value = _dig(payload, *path)
        if not isinstance(value, list):
            return None
        items = [item for item in value if (isinstance(item, str) and item.strip()) or isinstance(item, Mapping)]
        return [dict(item) if isinstance(item, Mapping) else item for item in items] or None

    return _extract


def _text_at(*path: str) -> Callable[[Mapping[str, Any]], str | None]:
    def _extract(payload: Mapping[str, Any]) -> str | None:
        value = _dig(payload, *path)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    return _extract


def _chain(
    factory: Callable[..., Callable[[Mapping[str, Any]], T | None]],
    *names: str,
) -> tuple[Extractor[T], ...]:
    """One extractor per dotted name, reading the value at that path."""
    return tuple(Extractor(name, factory(*name.split(".")), tuple(name.split("."))) for name in names)


CONTENT_EXTRACTORS: tuple[Extractor[dict[str, Any]], ...] = _chain(
    _mapping_at,
    "slide_content",
    "content",
    "data.slide_content",
    "result.slide_content",
    "output.slide_content",
)

INSIGHT_EXTRACTORS: tuple[Extractor[list[str]], ...] = _chain(
    _strings_at,
    "insights",
    "key_insights",
    "slide_content.insights",
    "data.insights",
    "result.insights",
    "key_findings",
)

CITATION_EXTRACTORS: tuple[Extractor[list[Any]], ...] = _chain(
    _citations_at,
    "citations",
    "sources",
    "references",
    "slide_content.citations",
    "data.citations",
)

TITLE_EXTRACTORS: tuple[Extractor[str], ...] = _chain(_text_at, "title", "slide_title", "heading")


def first_match(payload: Mapping[str, Any], extractors: Sequence[Extractor[T]]) -> Extraction[T] | None:
    for extractor in extractors:
        value = extractor.extract(payload)
        if value:
            return Extraction(value=value, source=extractor.name)
    return None


def has_shape(payload: Mapping[str, Any], extractors: Sequence[Extractor[Any]], kind: type) -> bool:
    """True when some extractor's path holds a ``kind`` value, even an empty one."""
    return any(extractor.path and isinstance(_dig(payload, *extractor.path), kind) for extractor in extractors)
