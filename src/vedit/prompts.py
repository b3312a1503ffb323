"""Prompt templates that turn edit requests into a system/user message pair."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

from .edits import (
    EditKind,
    EditRequest,
    FreeformEdit,
    ImageChange,
    MultiElementEdit,
    StyleChange,
    TextChange,
)

SYSTEM_PROMPT = (
    "You are a web development assistant that edits the HTML, CSS and JavaScript files of a live project.\n"
    "\n"
    "## Rules\n"
    "- Make changes by calling tools. Never describe an edit instead of performing it.\n"
    "- Call read_file on a file before you patch it.\n"
    "- Prefer patch_file with an exact old_content snippet; use write_file only for new files or large rewrites.\n"
    "- Change only what the request needs and keep every untouched line as it is.\n"
    "- Keep the result valid HTML and CSS.\n"
    "- Do not ask for confirmation. Start with a tool call.\n"
    "\n"
    "## Project Layout\n"
    "Projects usually contain index.html, style.css and script.js. Styling changes belong in the main "
    "stylesheet and structural changes in the main HTML file.\n"
    "\n"
    "## Tools\n"
    "- read_file: read a file\n"
    "- write_file: create or overwrite a file\n"
    "- patch_file: replace an exact snippet inside a file (preferred)\n"
    "- delete_file: delete a file\n"
    "- rename_file: move or rename a file\n"
    "- list_files: list project files"
)


@dataclass(frozen=True, slots=True)
class ExcerptLimits:
    """Character budgets applied to element markup quoted in prompts."""

    element: int = 500
    compact: int = 300


@dataclass(frozen=True, slots=True)
class PromptPair:
    """System and user messages that seed a conversation."""

    system: str
    user: str


def excerpt(markup: str, limit: int) -> str:
    """Return at most ``limit`` leading characters of ``markup``."""
    if limit <= 0:
        return ""
    return markup[:limit]


def _markup_block(markup: str, limit: int) -> str:
    return f"```html\n{excerpt(markup, limit)}\n```"


def render_style_prompt(request: StyleChange, limits: ExcerptLimits) -> str:
    old_value = request.old_value if request.old_value is not None else "unset"
    return (
        f'## Task\nSet the CSS property "{request.property}" of the elements matching "{request.selector}" '
        f'from "{old_value}" to "{request.new_value}".\n'
        "\n"
        f"## Element\n{_markup_block(request.element_markup, limits.element)}\n"
        "\n"
        "## Steps\n"
        "1. Read the stylesheet first (style.css, then styles.css, then main.css).\n"
        f'2. Locate the rule for "{request.selector}"; add a new rule when none exists.\n'
        f'3. Use patch_file to change only the "{request.property}" declaration.\n'
        "\n"
        "## Example Patch\n"
        '- old_content: "background-color: blue;"\n'
        '- new_content: "background-color: red;"'
    )


def render_text_prompt(request: TextChange, limits: ExcerptLimits) -> str:
    return (
        f'## Task\nReplace the text of the element "{request.selector}" in the HTML file.\n'
        "\n"
        f'Old text: "{request.old_text}"\n'
        f'New text: "{request.new_text}"\n'
        "\n"
        f"## Element\n{_markup_block(request.element_markup, limits.element)}\n"
        "\n"
        "## Steps\n"
        "1. Read index.html (or the main HTML file) first.\n"
        "2. Find the element and the text to change.\n"
        "3. Use patch_file to replace only the old text with the new text.\n"
        "4. Keep tags, attributes and surrounding content unchanged."
    )


def render_image_prompt(request: ImageChange, limits: ExcerptLimits) -> str:
    old_src = request.old_src if request.old_src is not None else "none"
    return (
        f'## Task\nChange the src attribute of the image matching "{request.selector}".\n'
        "\n"
        f'Old src: "{old_src}"\n'
        f'New src: "{request.new_src}"\n'
        "\n"
        f"## Element\n{_markup_block(request.element_markup, limits.compact)}\n"
        "\n"
        "## Steps\n"
        "1. Read index.html (or the main HTML file) first.\n"
        "2. Find the <img> element matching the selector.\n"
        "3. Use patch_file to update only the src attribute.\n"
        "4. Leave alt, class, id and every other attribute untouched.\n"
        "\n"
        "## Example Patch\n"
        '- old_content: src="old-image.jpg"\n'
        f'- new_content: src="{request.new_src}"'
    )


def render_freeform_prompt(request: FreeformEdit, limits: ExcerptLimits) -> str:
    return (
        f"## User Request\n{request.prompt.strip()}\n"
        "\n"
        f"## Target Element\n{request.selector}\n"
        f"{_markup_block(request.element_markup, limits.element)}\n"
        "\n"
        "## Steps\n"
        "1. Read the relevant files to learn their current state.\n"
        "2. Make the requested change with patch_file.\n"
        "3. Change nothing the request does not need."
    )


def render_multi_prompt(request: MultiElementEdit, limits: ExcerptLimits) -> str:
    count = len(request.elements)
    descriptions = "\n\n".join(
        f"Element {index}: {element.selector}\n{_markup_block(element.markup, limits.compact)}"
        for index, element in enumerate(request.elements, start=1)
    )
    return (
        f"## User Request\n{request.prompt.strip()}\n"
        "\n"
        f"## Selected Elements ({count} total)\n{descriptions or '(none)'}\n"
        "\n"
        "## Steps\n"
        "1. Read the HTML and CSS files to learn their current state.\n"
        f"2. Apply the request to all {count} selected elements.\n"
        "3. Use patch_file for each modification.\n"
        "4. When the elements share a class, prefer editing that CSS class over inline styles.\n"
        "5. Keep the modified elements consistent with each other."
    )


_UserRenderer = Callable[..., str]

_RENDERERS: Dict[EditKind, _UserRenderer] = {
    EditKind.STYLE: render_style_prompt,
    EditKind.TEXT: render_text_prompt,
    EditKind.IMAGE: render_image_prompt,
    EditKind.FREEFORM: render_freeform_prompt,
    EditKind.MULTI: render_multi_prompt,
}


def build_prompt(request: EditRequest, *, limits: ExcerptLimits | None = None) -> PromptPair:
    """Return the system and user messages for ``request``."""
    renderer = _RENDERERS[request.kind]
    return PromptPair(system=SYSTEM_PROMPT, user=renderer(request, limits or ExcerptLimits()))


__all__ = [
    "SYSTEM_PROMPT",
    "ExcerptLimits",
    "PromptPair",
    "build_prompt",
    "excerpt",
    "render_freeform_prompt",
    "render_image_prompt",
    "render_multi_prompt",
    "render_style_prompt",
    "render_text_prompt",
]
