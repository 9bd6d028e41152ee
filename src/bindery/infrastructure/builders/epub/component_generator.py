# FILE: src/bindery/infrastructure/builders/epub/component_generator.py
from datetime import datetime, timezone
from typing import Any

from jinja2 import Environment

from ....models.book import Book
from ....models.domain import (
    ManifestEntry,
    ManifestItem,
    NavPoint,
    ResolvedDivision,
    SpineItemRef,
)
from ....shared.constants import MIME_TYPES, PACKAGE_PATHS, RESERVED_IDS
from ....shared.enums import MetadataKind
from ....shared.themes import Theme
from .formats import EpubProfile
from .identifiers import flatten

SCRIPTED_PROPERTY = 'scripted'


class EpubComponentGenerator:
    """
    解決済みのディビジョンツリーから、マニフェスト・スパイン・目次を組み立て、
    OPFと目次文書(NCX / nav.xhtml)をレンダリングするクラス。
    """

    def __init__(
        self,
        book: Book,
        profile: EpubProfile,
        template_env: Environment,
        theme: Theme,
        language: str,
    ):
        self.book = book
        self.profile = profile
        self.template_env = template_env
        self.theme = theme
        self.language = language

    # --- 構造の組み立て ---

    def build_manifest(
        self,
        divisions: list[ResolvedDivision],
        scripts: list[ManifestItem],
        assets: list[ManifestEntry],
    ) -> list[ManifestItem]:
        """目次、全ディビジョン(前順)、スタイルシート、スクリプト、画像の順に <item> を並べます。"""
        items = [
            ManifestItem(
                id=self.profile.nav_id,
                href=self.profile.nav_href,
                media_type=self.profile.nav_media_type,
                properties=self.profile.nav_properties,
            )
        ]

        division_properties = (
            SCRIPTED_PROPERTY if scripts and self.profile.supports_properties else None
        )
        items.extend(
            ManifestItem(
                id=node.xml_id,
                href=node.output_file,
                media_type=MIME_TYPES.XHTML,
                properties=division_properties,
            )
            for node in flatten(divisions)
        )
        items.append(
            ManifestItem(
                id=RESERVED_IDS.STYLESHEET,
                href=PACKAGE_PATHS.STYLESHEET_FILE,
                media_type=MIME_TYPES.CSS,
            )
        )
        items.extend(scripts)
        items.extend(
            ManifestItem(
                id=entry.xml_id,
                href=entry.file_name,
                media_type=entry.mime_type,
                properties=entry.properties if self.profile.supports_properties else None,
            )
            for entry in assets
        )
        return items

    def build_spine(self, divisions: list[ResolvedDivision]) -> list[SpineItemRef]:
        """前順走査で平坦化したディビジョンの <itemref> を返します。"""
        itemrefs = []
        if self.profile.nav_in_spine:
            itemrefs.append(SpineItemRef(idref=self.profile.nav_id, linear=False))
        itemrefs.extend(SpineItemRef(idref=node.xml_id) for node in flatten(divisions))
        return itemrefs

    def build_nav_points(self, divisions: list[ResolvedDivision]) -> list[NavPoint]:
        """
        ツリーと同じ入れ子構造の目次を返します。
        playOrder は前順走査の順に1から振られます。
        """
        counter = 0

        def build(node: ResolvedDivision) -> NavPoint:
            nonlocal counter
            counter += 1
            play_order = counter
            children = [build(child) for child in node.children]
            return NavPoint(
                id=node.xml_id,
                label=node.label,
                href=node.output_file,
                css_class=node.division.type.value,
                play_order=play_order,
                children=children,
            )

        return [build(node) for node in divisions]

    # --- レンダリング ---

    def generate_css(self) -> bytes:
        """書籍のスタイルシート、または組み込みのスタイルシートを返します。"""
        if self.book.stylesheet:
            return self.book.stylesheet.encode('utf-8')
        context = {'extra_stylesheet': self.book.extra_stylesheet}
        return self._render_template(self.theme.templates.CSS, context)

    def generate_opf(
        self,
        manifest_items: list[ManifestItem],
        spine_itemrefs: list[SpineItemRef],
        cover_entry: ManifestEntry | None,
    ) -> bytes:
        """book.opf の内容を生成します。"""
        context = {
            'book': self.book,
            'language': self.language,
            'identifiers': self._identifiers(),
            'book_id_ref': RESERVED_IDS.BOOK_ID,
            'creator_id': RESERVED_IDS.CREATOR,
            'modified': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
            'dublin_core_entries': [
                entry
                for entry in self.book.metadata
                if entry.kind == MetadataKind.DUBLIN_CORE
            ],
            'special_entries': [
                entry
                for entry in self.book.metadata
                if entry.kind == MetadataKind.SPECIAL
            ],
            'cover_id': cover_entry.xml_id if cover_entry else None,
            'manifest_items': manifest_items,
            'spine_itemrefs': spine_itemrefs,
            'toc_id': self.profile.nav_id,
        }
        return self._render_template(self.theme.templates.CONTENT_OPF, context)

    def generate_nav(self, nav_points: list[NavPoint], depth: int) -> bytes:
        """目次文書 (EPUB2: book.ncx / EPUB3: toc.xhtml) を生成します。"""
        context = {
            'book': self.book,
            'language': self.language,
            'depth': depth,
            'nav_points': nav_points,
            'strings': self.theme.strings,
        }
        return self._render_template(self.profile.nav_template, context)

    def _identifiers(self) -> list[dict[str, Any]]:
        """
        URLとISBNから dc:identifier を作成します。
        BookId はISBNがあればISBN、なければURLに付与し、どちらもなければ生成したURNを使用します。
        """
        identifiers: list[dict[str, Any]] = []
        book_id_value = self.book.identifier
        if self.book.url:
            identifiers.append({'value': self.book.url, 'scheme': 'URL'})
        if self.book.isbn:
            identifiers.append({'value': self.book.isbn, 'scheme': 'ISBN'})
        if not identifiers:
            identifiers.append({'value': book_id_value, 'scheme': 'UUID'})
        marked = False
        for identifier in identifiers:
            is_book_id = not marked and identifier['value'] == book_id_value
            identifier['id'] = RESERVED_IDS.BOOK_ID if is_book_id else None
            marked = marked or is_book_id
        return identifiers

    def _render_template(self, template_name: str, context: dict[str, Any]) -> bytes:
        template = self.template_env.get_template(template_name)
        rendered_str = template.render(context)
        return rendered_str.encode('utf-8')
