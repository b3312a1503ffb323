from __future__ import annotations

from vedit.edits import (
    FreeformEdit,
    ImageChange,
    MultiElementEdit,
    SelectedElement,
    StyleChange,
    TextChange,
)
from vedit.prompts import SYSTEM_PROMPT, ExcerptLimits, build_prompt


def test_style_prompt_names_selector_property_and_values() -> None:
    request = StyleChange(
        selector=".card",
        property="background-color",
        new_value="red",
        element_markup='<div class="card">x</div>',
    )

    pair = build_prompt(request)

    assert pair.system == SYSTEM_PROMPT
    assert '".card"' in pair.user
    assert '"background-color"' in pair.user
    assert 'from "unset" to "red"' in pair.user
    assert '<div class="card">x</div>' in pair.user


def test_markup_excerpt_is_truncated_to_budget() -> None:
    markup = "<p>" + "a" * 1000 + "</p>"
    request = TextChange(selector="p", old_text="a", new_text="b", element_markup=markup)

    user = build_prompt(request).user

    assert markup[:500] in user
    assert markup[:501] not in user


def test_image_and_multi_prompts_use_compact_budget() -> None:
    markup = "<img " + "x" * 600 + ">"
    image = build_prompt(ImageChange(selector="img.hero", new_src="new.png", element_markup=markup)).user
    assert markup[:300] in image
    assert markup[:301] not in image
    assert 'Old src: "none"' in image

    multi = MultiElementEdit(
        prompt="Make these bold",
        elements=[SelectedElement("h1", markup), SelectedElement("h2", "<h2>b</h2>")],
    )
    user = build_prompt(multi).user
    assert "(2 total)" in user
    assert "Element 1: h1" in user
    assert "Element 2: h2" in user
    assert markup[:301] not in user


def test_custom_limits_apply() -> None:
    request = FreeformEdit(prompt="  Center it  ", selector="#main", element_markup="abcdefgh")

    user = build_prompt(request, limits=ExcerptLimits(element=3, compact=1)).user

    assert "Center it" in user
    assert "#main" in user
    assert "```html\nabc\n```" in user


def test_builder_is_deterministic() -> None:
    request = StyleChange(selector="h1", property="color", new_value="red", old_value="blue")

    assert build_prompt(request) == build_prompt(request)
