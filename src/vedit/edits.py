"""Typed edit requests submitted by the visual inspector."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

__all__ = [
    "EditKind",
    "EditRequest",
    "FreeformEdit",
    "ImageChange",
    "MultiElementEdit",
    "SelectedElement",
    "StyleChange",
    "TextChange",
]


class EditKind(str, Enum):
    """Enumeration of the supported edit request kinds."""

    STYLE = "style"
    TEXT = "text"
    IMAGE = "image"
    FREEFORM = "freeform"
    MULTI = "multi"

    @property
    def debounced(self) -> bool:
        """Return True for kinds driven by bursty inspector controls."""
        return self in {EditKind.STYLE, EditKind.TEXT, EditKind.IMAGE}


@dataclass(frozen=True, slots=True)
class StyleChange:
    """Change a single CSS property on the elements matching ``selector``."""

    selector: str
    property: str
    new_value: str
    element_markup: str = ""
    old_value: str | None = None

    @property
    def kind(self) -> EditKind:
        return EditKind.STYLE


@dataclass(frozen=True, slots=True)
class TextChange:
    """Replace the visible text of an element."""

    selector: str
    old_text: str
    new_text: str
    element_markup: str = ""

    @property
    def kind(self) -> EditKind:
        return EditKind.TEXT


@dataclass(frozen=True, slots=True)
class ImageChange:
    """Point an ``<img>`` element at a new source."""

    selector: str
    new_src: str
    element_markup: str = ""
    old_src: str | None = None

    @property
    def kind(self) -> EditKind:
        return EditKind.IMAGE


@dataclass(frozen=True, slots=True)
class FreeformEdit:
    """Natural-language instruction scoped to one element."""

    prompt: str
    selector: str
    element_markup: str = ""

    @property
    def kind(self) -> EditKind:
        return EditKind.FREEFORM


@dataclass(frozen=True, slots=True)
class SelectedElement:
    """Element picked in multi-select mode."""

    selector: str
    markup: str = ""


@dataclass(frozen=True, slots=True)
class MultiElementEdit:
    """Natural-language instruction applied to several selected elements."""

    prompt: str
    elements: tuple[SelectedElement, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any sequence from callers but keep the stored value immutable.
        if not isinstance(self.elements, tuple):
            object.__setattr__(self, "elements", tuple(self.elements))

    @property
    def kind(self) -> EditKind:
        return EditKind.MULTI


EditRequest = Union[StyleChange, TextChange, ImageChange, FreeformEdit, MultiElementEdit]
