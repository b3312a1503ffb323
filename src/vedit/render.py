"""Live preview updates applied before edits are persisted."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

__all__ = ["LiveRenderer", "NullRenderer", "ScriptRenderer", "escape_js_string"]


class LiveRenderer:
    """Surface that reflects an edit immediately, ahead of the file change.

    Methods may return ``None`` or an awaitable; the dispatcher schedules
    awaitables without waiting for them.
    """

    def apply_style(self, selector: str, property: str, value: str) -> Awaitable[Any] | None:
        raise NotImplementedError

    def apply_text(self, selector: str, text: str) -> Awaitable[Any] | None:
        raise NotImplementedError

    def apply_image_src(self, selector: str, src: str) -> Awaitable[Any] | None:
        raise NotImplementedError

    def reload(self) -> Awaitable[Any] | None:
        raise NotImplementedError


class NullRenderer(LiveRenderer):
    """Renderer used when no preview surface is attached."""

    def apply_style(self, selector: str, property: str, value: str) -> None:
        return None

    def apply_text(self, selector: str, text: str) -> None:
        return None

    def apply_image_src(self, selector: str, src: str) -> None:
        return None

    def reload(self) -> None:
        return None


def escape_js_string(value: str) -> str:
    """Escape ``value`` for use inside a single-quoted JavaScript literal."""
    return (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


_STYLE_SCRIPT = """(function() {
  try {
    var elements = document.querySelectorAll('%(selector)s');
    elements.forEach(function(el) { el.style['%(property)s'] = '%(value)s'; });
    return elements.length;
  } catch (e) {
    console.error('Live style update error:', e);
    return 0;
  }
})();"""

_TEXT_SCRIPT = """(function() {
  try {
    var elements = document.querySelectorAll('%(selector)s');
    if (elements.length > 0) {
      var el = elements[0];
      var textNode = null;
      for (var i = 0; i < el.childNodes.length; i++) {
        var node = el.childNodes[i];
        if (node.nodeType === Node.TEXT_NODE && node.textContent.trim()) { textNode = node; break; }
      }
      if (textNode) {
        textNode.textContent = '%(text)s';
      } else if (!el.children.length) {
        el.textContent = '%(text)s';
      }
    }
    return elements.length;
  } catch (e) {
    console.error('Live text update error:', e);
    return 0;
  }
})();"""

_IMAGE_SCRIPT = """(function() {
  try {
    var elements = document.querySelectorAll('%(selector)s');
    elements.forEach(function(el) { if (el.tagName === 'IMG') { el.src = '%(src)s'; } });
    return elements.length;
  } catch (e) {
    console.error('Live image update error:', e);
    return 0;
  }
})();"""


class ScriptRenderer(LiveRenderer):
    """Translate preview updates into JavaScript for an embedded web view.

    ``evaluate`` receives each script; ``reload`` is called when the whole page
    must be refreshed after a structural edit.
    """

    def __init__(
        self,
        evaluate: Callable[[str], Awaitable[Any] | None],
        reload: Callable[[], Awaitable[Any] | None] | None = None,
    ) -> None:
        self._evaluate = evaluate
        self._reload = reload

    @staticmethod
    def style_script(selector: str, property: str, value: str) -> str:
        return _STYLE_SCRIPT % {
            "selector": escape_js_string(selector),
            "property": escape_js_string(property),
            "value": escape_js_string(value),
        }

    @staticmethod
    def text_script(selector: str, text: str) -> str:
        return _TEXT_SCRIPT % {"selector": escape_js_string(selector), "text": escape_js_string(text)}

    @staticmethod
    def image_script(selector: str, src: str) -> str:
        return _IMAGE_SCRIPT % {"selector": escape_js_string(selector), "src": escape_js_string(src)}

    def apply_style(self, selector: str, property: str, value: str) -> Awaitable[Any] | None:
        return self._evaluate(self.style_script(selector, property, value))

    def apply_text(self, selector: str, text: str) -> Awaitable[Any] | None:
        return self._evaluate(self.text_script(selector, text))

    def apply_image_src(self, selector: str, src: str) -> Awaitable[Any] | None:
        return self._evaluate(self.image_script(selector, src))

    def reload(self) -> Awaitable[Any] | None:
        if self._reload is None:
            return self._evaluate("window.location.reload();")
        return self._reload()
