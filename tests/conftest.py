from __future__ import annotations

import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@dataclass(slots=True)
class TinySite:
    """Fixture payload representing the synthetic web project under edit."""

    root: Path
    config_path: Path

    @property
    def logs_root(self) -> Path:
        return self.root / ".vedit" / "logs"

    def read(self, name: str) -> str:
        return (self.root / name).read_text(encoding="utf-8")


@pytest.fixture()
def tiny_site(tmp_path: Path) -> TinySite:
    """Create a small static site with a config file for CLI and dispatcher tests."""

    site_root = tmp_path / "site"
    site_root.mkdir()
    (site_root / "index.html").write_text(
        textwrap.dedent(
            """
            <!DOCTYPE html>
            <html>
              <head><link rel="stylesheet" href="style.css"></head>
              <body>
                <div class="card"><h1 class="title">Hello</h1></div>
                <img class="hero" src="old.png" alt="Hero">
              </body>
            </html>
            """
        ).lstrip(),
        encoding="utf-8",
    )
    (site_root / "style.css").write_text(
        ".card { background-color: blue; }\n",
        encoding="utf-8",
    )
    (site_root / "config.yaml").write_text(
        textwrap.dedent(
            """
            project:
              id: site
              root: .
            editor:
              debounce_seconds: 0.01
              max_turns: 3
            models:
              default: offline
            paths:
              logs: .vedit/logs
            """
        ).lstrip(),
        encoding="utf-8",
    )
    return TinySite(root=site_root, config_path=site_root / "config.yaml")
