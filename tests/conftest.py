"""
共通フィクスチャ。

画像の取得はネットワークに接続しない StubFetcher で置き換えます。
"""

import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path

import pytest

from bindery.infrastructure.builders.epub.builder import EpubBuilder
from bindery.models.book import Book, Division, DivisionOptions
from bindery.shared.enums import DivisionType
from bindery.shared.exceptions import FetchError
from bindery.shared.settings import Settings

OPF_NS = {'opf': 'http://www.idpf.org/2007/opf'}
NCX_NS = {'ncx': 'http://www.daisy.org/z3986/2005/ncx/'}
XHTML_NS = {'xhtml': 'http://www.w3.org/1999/xhtml'}

# 1x1 の透明PNG
PNG_BYTES = (
    b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01'
    b'\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f'
    b'\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82'
)


class StubFetcher:
    """URLとバイト列の対応表から応答するフェッチャー。未登録のURLは FetchError。"""

    def __init__(self, resources: dict[str, bytes] | None = None):
        self.resources = dict(resources or {})
        self.requested: list[str] = []

    def fetch(self, url: str, base_dir: Path | None = None) -> bytes:
        self.requested.append(url)
        if url not in self.resources:
            raise FetchError('not found', url=url, status_code=404)
        return self.resources[url]


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def builder(settings: Settings, fetcher: StubFetcher) -> EpubBuilder:
    return EpubBuilder(settings=settings, fetcher=fetcher)


@pytest.fixture
def write_source(tmp_path: Path):
    """原稿ファイルを tmp_path 以下に作成するヘルパー。"""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')
        return path

    return _write


@pytest.fixture
def demo_book(write_source) -> Book:
    """1章だけの最小構成の書籍。"""
    return Book(
        output='demo',
        title='Demo',
        divisions=[
            Division(
                type=DivisionType.CHAPTER,
                title='Intro',
                file=write_source('intro.xhtml', '<p>Hi</p>'),
            )
        ],
    )


@pytest.fixture
def nested_book(write_source) -> Book:
    """部と付録を含む入れ子構造の書籍。"""
    return Book(
        output='nested',
        title='Nested',
        author='Author',
        url='http://example.com/book/nested',
        divisions=[
            Division(title='Chapter 1', file=write_source('chapter_1.xhtml', '<p>1</p>')),
            Division(
                title='Chapter 2',
                file=write_source(
                    'chapter_2.xhtml',
                    '<!DOCTYPE html>\n<html xmlns="http://www.w3.org/1999/xhtml">'
                    '<head><title>Two</title></head><body><p>2</p></body></html>',
                ),
                options=DivisionOptions(body_only=False),
            ),
            Division(
                type=DivisionType.PART,
                title='Appendices',
                file=write_source('appendices.xhtml', '<p>A</p>'),
                divisions=[
                    Division(
                        type=DivisionType.APPENDIX,
                        title='Errata',
                        file=write_source('errata.xhtml', '<p>E</p>'),
                    ),
                    Division(
                        type=DivisionType.APPENDIX,
                        title='Index',
                        file=write_source('index.xhtml', '<p>I</p>'),
                    ),
                ],
            ),
            Division(
                type=DivisionType.PART,
                title='Colophon',
                file=write_source('colophon.xhtml', '<p>C</p>'),
            ),
        ],
    )


def read_entry(epub_path: Path, name: str) -> bytes:
    with zipfile.ZipFile(epub_path) as zf:
        return zf.read(name)


def parse_opf(epub_path: Path) -> ET.Element:
    return ET.fromstring(read_entry(epub_path, 'book.opf'))


def manifest_items(opf: ET.Element) -> list[dict[str, str]]:
    return [dict(item.attrib) for item in opf.findall('opf:manifest/opf:item', OPF_NS)]


def spine_idrefs(opf: ET.Element) -> list[str]:
    return [
        itemref.attrib['idref']
        for itemref in opf.findall('opf:spine/opf:itemref', OPF_NS)
    ]
