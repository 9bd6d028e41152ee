# src/bindery/shared/themes.py
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

# --- 1. 定義 (Dataclasses) ---


@dataclass(frozen=True)
class ThemeStrings:
    """
    ローカライズ可能なUI文字列。
    `nav.xhtml.j2` がこれを参照する。
    """

    TOC_TITLE: str = 'Contents'


@dataclass(frozen=True)
class ThemeTemplates:
    """
    ビルダーが参照するテンプレートファイル名の定義。
    `component_generator.py` と `content_wrapper.py` がこれを参照する。
    """

    CSS: str = 'book.css.j2'
    DIVISION: str = 'division.xhtml.j2'
    CONTENT_OPF: str = 'content.opf.j2'


@dataclass(frozen=True)
class Theme:
    """
    単一のテーマ定義。
    `path` 以下に共通テンプレート (common/) とバージョン別テンプレート (epub2/, epub3/) を持つ。
    """

    name: str
    path: Path
    strings: ThemeStrings = field(default_factory=ThemeStrings)
    templates: ThemeTemplates = field(default_factory=ThemeTemplates)


# --- 2. 設定 (Instances) ---

ASSETS_ROOT = (
    Path(__file__).parent.parent
    / 'infrastructure'
    / 'builders'
    / 'epub'
    / 'assets'
    / 'templates'
)

DEFAULT_THEME: Final = Theme(name='default', path=ASSETS_ROOT)
