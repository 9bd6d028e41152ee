"""
EpubBuilder によるEPUBアーカイブ生成のテスト

- 最小構成 (demo) の書籍のエントリ・マニフェスト・スパイン
- mimetype が非圧縮の先頭エントリであること
- 入れ子構造の目次 (playOrder / depth)
- 画像の取り込みとファイル名の衝突回避
- 既存の出力ファイルの置き換えと、失敗時の保全
- EPUB3 固有の出力
"""

import os
import stat
import xml.etree.ElementTree as ET
import zipfile

import pytest
from bs4 import BeautifulSoup
from conftest import (
    NCX_NS,
    OPF_NS,
    PNG_BYTES,
    StubFetcher,
    manifest_items,
    parse_opf,
    read_entry,
    spine_idrefs,
)

from bindery.infrastructure.builders.epub.builder import EpubBuilder
from bindery.models.book import Book, Division, DivisionOptions
from bindery.shared.enums import OutputFormat
from bindery.shared.exceptions import (
    ConfigurationError,
    DuplicateIdentifierError,
    ResourceError,
)
from bindery.shared.settings import Settings


class TestDemoBook:
    """1章だけの書籍の生成。"""

    def test_produces_expected_entries(self, builder, demo_book, tmp_path):
        """mimetype・container・本文・CSS・OPF・NCX が格納されること。"""
        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        assert output == tmp_path / 'demo.epub'
        with zipfile.ZipFile(output) as zf:
            names = set(zf.namelist())
        assert {
            'mimetype',
            'META-INF/container.xml',
            'intro.xhtml',
            'css/book.css',
            'book.opf',
            'book.ncx',
        } <= names

    def test_wraps_fragment(self, builder, demo_book, tmp_path):
        """断片の原稿がXHTML文書の <body> に埋め込まれること。"""
        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        text = read_entry(output, 'intro.xhtml').decode('utf-8')
        assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert '<title>Intro</title>' in text
        assert '<body><p>Hi</p></body>' in text
        assert 'href="css/book.css"' in text

    def test_manifest_and_spine(self, builder, demo_book, tmp_path):
        """マニフェストは ncx・本文・CSS の3項目、スパインは本文のみ。"""
        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        opf = parse_opf(output)
        items = {item['id']: item for item in manifest_items(opf)}
        assert set(items) == {'ncx', 'intro', 'stylesheet'}
        assert items['intro']['href'] == 'intro.xhtml'
        assert items['intro']['media-type'] == 'application/xhtml+xml'
        assert items['ncx']['media-type'] == 'application/x-dtbncx+xml'
        assert items['stylesheet']['href'] == 'css/book.css'
        assert spine_idrefs(opf) == ['intro']
        assert opf.find('opf:spine', OPF_NS).attrib['toc'] == 'ncx'

    def test_mimetype_is_first_and_stored(self, builder, demo_book, tmp_path):
        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        with zipfile.ZipFile(output) as zf:
            first = zf.infolist()[0]
            assert first.filename == 'mimetype'
            assert first.compress_type == zipfile.ZIP_STORED
            assert zf.read('mimetype') == b'application/epub+zip'
            for info in zf.infolist()[1:]:
                if not info.is_dir():
                    assert info.compress_type == zipfile.ZIP_DEFLATED

    def test_metadata(self, builder, demo_book, tmp_path):
        """タイトル・既定の言語・生成された BookId が出力されること。"""
        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        opf = parse_opf(output)
        dc = {'dc': 'http://purl.org/dc/elements/1.1/'}
        assert opf.find('opf:metadata/dc:title', {**OPF_NS, **dc}).text == 'Demo'
        assert opf.find('opf:metadata/dc:language', {**OPF_NS, **dc}).text == 'en'
        identifier = opf.find('opf:metadata/dc:identifier', {**OPF_NS, **dc})
        assert identifier.attrib['id'] == 'BookId'
        assert identifier.text == demo_book.identifier
        assert opf.attrib['unique-identifier'] == 'BookId'


class TestNestedBook:
    """入れ子構造の書籍の生成。"""

    def test_spine_is_preorder_and_unique(self, builder, nested_book, tmp_path):
        output = builder.build(nested_book, OutputFormat.EPUB2, tmp_path / 'n.epub')

        idrefs = spine_idrefs(parse_opf(output))
        assert idrefs == [
            'chapter_1',
            'chapter_2',
            'appendices',
            'errata',
            'index',
            'colophon',
        ]
        assert len(idrefs) == len(set(idrefs))

    def test_manifest_covers_every_entry(self, builder, nested_book, tmp_path):
        """スパインの全 idref と、アーカイブ内の全ファイルがマニフェストに含まれること。"""
        output = builder.build(nested_book, OutputFormat.EPUB2, tmp_path / 'n.epub')

        opf = parse_opf(output)
        items = manifest_items(opf)
        ids = {item['id'] for item in items}
        hrefs = {item['href'] for item in items}
        assert set(spine_idrefs(opf)) <= ids
        with zipfile.ZipFile(output) as zf:
            files = {
                info.filename for info in zf.infolist() if not info.is_dir()
            } - {'mimetype', 'META-INF/container.xml', 'book.opf'}
        assert files == hrefs

    def test_navigation_order_and_depth(self, builder, nested_book, tmp_path):
        """playOrder は前順に1から連続し、深さは最も深い枝の長さになること。"""
        output = builder.build(nested_book, OutputFormat.EPUB2, tmp_path / 'n.epub')

        ncx = ET.fromstring(read_entry(output, 'book.ncx'))
        points = ncx.findall('.//ncx:navPoint', NCX_NS)
        assert [int(p.attrib['playOrder']) for p in points] == list(range(1, 7))
        assert [p.attrib['id'] for p in points] == [
            'chapter_1',
            'chapter_2',
            'appendices',
            'errata',
            'index',
            'colophon',
        ]
        depth = ncx.find("ncx:head/ncx:meta[@name='dtb:depth']", NCX_NS)
        assert depth.attrib['content'] == '2'

        top_level = ncx.findall('ncx:navMap/ncx:navPoint', NCX_NS)
        assert [p.attrib['id'] for p in top_level] == [
            'chapter_1',
            'chapter_2',
            'appendices',
            'colophon',
        ]
        assert top_level[2].attrib['class'] == 'part'

    def test_full_document_round_trip(self, builder, nested_book, tmp_path):
        """body_only=False の原稿はバイト列を変えずに格納されること。"""
        output = builder.build(nested_book, OutputFormat.EPUB2, tmp_path / 'n.epub')

        source = nested_book.divisions[1].file.read_bytes()
        assert read_entry(output, 'chapter_2.xhtml') == source

    def test_full_document_only_image_src_changes(
        self, settings, write_source, tmp_path
    ):
        """完全文書の原稿では、取り込んだ画像の src だけが書き換わること。"""
        source = (
            '<!DOCTYPE html>\n<html xmlns="http://www.w3.org/1999/xhtml">\n'
            '<head><title>Pictures</title></head>\n'
            '<body><p class="fig">Look: <img alt="A" src="http://img.example.com/a.png"/>'
            ' &amp; more</p></body>\n</html>\n'
        )
        book = Book(
            output='full',
            title='Full',
            divisions=[
                Division(
                    title='Pictures',
                    file=write_source('pictures.xhtml', source),
                    options=DivisionOptions(body_only=False),
                )
            ],
        )
        fetcher = StubFetcher({'http://img.example.com/a.png': PNG_BYTES})
        builder = EpubBuilder(settings=settings, fetcher=fetcher)

        output = builder.build(book, OutputFormat.EPUB2, tmp_path / 'full.epub')

        expected = source.replace('http://img.example.com/a.png', 'images/a.png')
        assert read_entry(output, 'pictures.xhtml') == expected.encode('utf-8')
        assert read_entry(output, 'images/a.png') == PNG_BYTES

    def test_url_becomes_book_id(self, builder, nested_book, tmp_path):
        output = builder.build(nested_book, OutputFormat.EPUB2, tmp_path / 'n.epub')

        opf = read_entry(output, 'book.opf').decode('utf-8')
        assert (
            '<dc:identifier id="BookId" opf:scheme="URL">'
            'http://example.com/book/nested</dc:identifier>'
        ) in opf
        assert '<dc:creator opf:role="aut">Author</dc:creator>' in opf


class TestImages:
    """画像の取り込み。"""

    def test_local_images_are_packaged(self, builder, write_source, tmp_path):
        (tmp_path / 'pics').mkdir()
        (tmp_path / 'pics' / 'foo.png').write_bytes(PNG_BYTES)
        book = Book(
            output='img',
            title='Images',
            divisions=[
                Division(
                    title='One',
                    file=write_source('one.xhtml', '<p><img src="pics/foo.png"/></p>'),
                )
            ],
        )
        # ローカル画像は実際のフェッチャーで読み込む
        local_builder = EpubBuilder(settings=Settings())

        output = local_builder.build(book, OutputFormat.EPUB2, tmp_path / 'img.epub')

        assert read_entry(output, 'images/foo.png') == PNG_BYTES
        assert 'src="images/foo.png"' in read_entry(output, 'one.xhtml').decode()
        items = {item['href']: item for item in manifest_items(parse_opf(output))}
        assert items['images/foo.png']['media-type'] == 'image/png'
        assert items['images/foo.png']['id'] == 'images-foo'

    def test_colliding_names_get_suffix(self, settings, write_source, tmp_path):
        """同名の異なる画像は images/foo.png と images/foo_1.png になること。"""
        fetcher = StubFetcher(
            {
                'http://a.example.com/foo.png': b'a',
                'http://b.example.com/foo.png': b'b',
            }
        )
        book = Book(
            output='img',
            title='Images',
            divisions=[
                Division(
                    title='One',
                    file=write_source(
                        'one.xhtml',
                        '<p><img src="http://a.example.com/foo.png"/>'
                        '<img src="http://b.example.com/foo.png"/>'
                        '<img src="http://a.example.com/foo.png"/></p>',
                    ),
                )
            ],
        )
        builder = EpubBuilder(settings=settings, fetcher=fetcher)

        output = builder.build(book, OutputFormat.EPUB2, tmp_path / 'img.epub')

        assert read_entry(output, 'images/foo.png') == b'a'
        assert read_entry(output, 'images/foo_1.png') == b'b'
        soup = BeautifulSoup(read_entry(output, 'one.xhtml'), 'html.parser')
        assert [img['src'] for img in soup.find_all('img')] == [
            'images/foo.png',
            'images/foo_1.png',
            'images/foo.png',
        ]
        hrefs = [item['href'] for item in manifest_items(parse_opf(output))]
        assert hrefs.count('images/foo.png') == 1
        assert hrefs.count('images/foo_1.png') == 1

    def test_failed_fetch_is_not_fatal(self, builder, write_source, tmp_path):
        """取得に失敗した画像は参照を変えずに残し、生成は成功すること。"""
        book = Book(
            output='img',
            title='Images',
            divisions=[
                Division(
                    title='One',
                    file=write_source(
                        'one.xhtml', '<p><img src="http://missing.example.com/x.png"/></p>'
                    ),
                )
            ],
        )

        output = builder.build(book, OutputFormat.EPUB2, tmp_path / 'img.epub')

        assert 'src="http://missing.example.com/x.png"' in read_entry(
            output, 'one.xhtml'
        ).decode()
        hrefs = [item['href'] for item in manifest_items(parse_opf(output))]
        assert not any(href.startswith('images/') for href in hrefs)

    def test_include_images_false_skips_harvest(self, settings, write_source, tmp_path):
        fetcher = StubFetcher({'http://a.example.com/foo.png': b'a'})
        book = Book(
            output='img',
            title='Images',
            divisions=[
                Division(
                    title='One',
                    file=write_source(
                        'one.xhtml', '<p><img src="http://a.example.com/foo.png"/></p>'
                    ),
                    options=DivisionOptions(include_images=False),
                )
            ],
        )
        builder = EpubBuilder(settings=settings, fetcher=fetcher)

        output = builder.build(book, OutputFormat.EPUB2, tmp_path / 'img.epub')

        assert fetcher.requested == []
        assert 'src="http://a.example.com/foo.png"' in read_entry(
            output, 'one.xhtml'
        ).decode()

    def test_relative_src_uses_division_url(self, settings, write_source, tmp_path):
        fetcher = StubFetcher({'http://example.com/book/img/pic.jpg': b'jpg'})
        book = Book(
            output='img',
            title='Images',
            divisions=[
                Division(
                    title='One',
                    file=write_source('one.xhtml', '<p><img src="img/pic.jpg"/></p>'),
                    options=DivisionOptions(url='http://example.com/book/one.html'),
                )
            ],
        )
        builder = EpubBuilder(settings=settings, fetcher=fetcher)

        output = builder.build(book, OutputFormat.EPUB2, tmp_path / 'img.epub')

        assert read_entry(output, 'images/pic.jpg') == b'jpg'

    def test_cover_image(self, settings, demo_book, tmp_path):
        fetcher = StubFetcher({'http://example.com/cover.jpg': b'cover'})
        demo_book.cover = 'http://example.com/cover.jpg'
        builder = EpubBuilder(settings=settings, fetcher=fetcher)

        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        opf = read_entry(output, 'book.opf').decode()
        assert '<meta name="cover" content="images-cover" />' in opf
        assert read_entry(output, 'images/cover.jpg') == b'cover'


class TestOutputFile:
    """出力ファイルの扱い。"""

    def test_replaces_existing_output(self, builder, demo_book, tmp_path):
        output = tmp_path / 'demo.epub'
        output.write_bytes(b'stale')

        builder.build(demo_book, OutputFormat.EPUB2, output)

        assert zipfile.is_zipfile(output)
        assert read_entry(output, 'mimetype') == b'application/epub+zip'
        assert list(tmp_path.glob('*.part')) == []

    @pytest.mark.skipif(os.name != 'posix', reason='POSIXの権限ビットを前提とする')
    def test_new_file_respects_umask(self, builder, demo_book, tmp_path):
        previous = os.umask(0o027)
        try:
            output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')
        finally:
            os.umask(previous)

        assert stat.S_IMODE(output.stat().st_mode) == 0o640

    @pytest.mark.skipif(os.name != 'posix', reason='POSIXの権限ビットを前提とする')
    def test_replaced_file_keeps_mode(self, builder, demo_book, tmp_path):
        output = tmp_path / 'demo.epub'
        output.write_bytes(b'stale')
        output.chmod(0o600)

        builder.build(demo_book, OutputFormat.EPUB2, output)

        assert stat.S_IMODE(output.stat().st_mode) == 0o600

    def test_failed_build_keeps_existing_output(self, builder, demo_book, tmp_path):
        """生成に失敗した場合、既存のファイルは残り、一時ファイルも残らないこと。"""
        output = tmp_path / 'demo.epub'
        output.write_bytes(b'previous')
        # 不正なUTF-8の原稿はアーカイブへの書き込み中に失敗する
        demo_book.divisions[0].file.write_bytes(b'\xff\xfe broken')

        with pytest.raises(ResourceError):
            builder.build(demo_book, OutputFormat.EPUB2, output)

        assert output.read_bytes() == b'previous'
        assert list(tmp_path.glob('.demo.epub.*')) == []

    def test_configuration_error_creates_no_file(self, builder, tmp_path):
        book = Book(
            output='broken',
            divisions=[Division(title='A', file=tmp_path / 'a.xhtml')],
        )

        with pytest.raises(ConfigurationError, match=r'\[title\]'):
            builder.build(book, OutputFormat.EPUB2, tmp_path / 'broken.epub')

        assert list(tmp_path.iterdir()) == []

    def test_creates_output_directory(self, builder, demo_book, tmp_path):
        output = tmp_path / 'out' / 'nested' / 'demo.epub'

        builder.build(demo_book, OutputFormat.EPUB2, output)

        assert output.is_file()


class TestIdentifiers:
    """ファイル名から導出した識別子の衝突。"""

    def _book(self, write_source) -> Book:
        return Book(
            output='dup',
            title='Duplicates',
            divisions=[
                Division(title='A', file=write_source('a/chapter.xhtml', '<p>a</p>')),
                Division(title='B', file=write_source('b/chapter.xhtml', '<p>b</p>')),
            ],
        )

    def test_collisions_are_suffixed(self, builder, write_source, tmp_path):
        output = builder.build(
            self._book(write_source), OutputFormat.EPUB2, tmp_path / 'dup.epub'
        )

        assert spine_idrefs(parse_opf(output)) == ['chapter', 'chapter_1']
        assert b'<p>b</p>' in read_entry(output, 'chapter_1.xhtml')

    def test_strict_mode_rejects_collisions(self, fetcher, write_source, tmp_path):
        strict = EpubBuilder(
            settings=Settings(builder={'strict_identifiers': True}), fetcher=fetcher
        )

        with pytest.raises(DuplicateIdentifierError):
            strict.build(
                self._book(write_source), OutputFormat.EPUB2, tmp_path / 'dup.epub'
            )
        assert not (tmp_path / 'dup.epub').exists()

    def test_metadata_ids_are_not_reused(self, builder, write_source, tmp_path):
        """BookId や Creator という名前の原稿が、OPFの固定識別子と衝突しないこと。"""
        book = Book(
            output='fixed',
            title='Fixed ids',
            author='Someone',
            isbn='9780000000000',
            divisions=[
                Division(title='A', file=write_source('BookId.xhtml', '<p>a</p>')),
                Division(title='B', file=write_source('Creator.xhtml', '<p>b</p>')),
            ],
        )

        output = builder.build(book, OutputFormat.EPUB3, tmp_path / 'fixed.epub')

        opf = parse_opf(output)
        ids = [element.attrib['id'] for element in opf.iter() if 'id' in element.attrib]
        assert len(ids) == len(set(ids))
        assert spine_idrefs(opf)[1:] == ['BookId_1', 'Creator_1']
        assert opf.attrib['unique-identifier'] == 'BookId'


class TestEpub3:
    """EPUB3 固有の出力。"""

    def test_nav_document(self, builder, nested_book, tmp_path):
        output = builder.build(nested_book, OutputFormat.EPUB3, tmp_path / 'n.epub')

        with zipfile.ZipFile(output) as zf:
            names = zf.namelist()
        assert 'toc.xhtml' in names
        assert 'book.ncx' not in names

        opf = parse_opf(output)
        assert opf.attrib['version'] == '3.0'
        items = {item['id']: item for item in manifest_items(opf)}
        assert items['toc']['properties'] == 'nav'
        assert 'toc' not in {item['id'] for item in manifest_items(opf)[1:]}

        itemrefs = opf.findall('opf:spine/opf:itemref', OPF_NS)
        assert itemrefs[0].attrib == {'idref': 'toc', 'linear': 'no'}
        assert [i.attrib['idref'] for i in itemrefs[1:]] == [
            'chapter_1',
            'chapter_2',
            'appendices',
            'errata',
            'index',
            'colophon',
        ]
        modified = opf.find("opf:metadata/opf:meta[@property='dcterms:modified']", OPF_NS)
        assert modified is not None and modified.text.endswith('Z')

    def test_nav_structure(self, builder, nested_book, tmp_path):
        output = builder.build(nested_book, OutputFormat.EPUB3, tmp_path / 'n.epub')

        nav = BeautifulSoup(read_entry(output, 'toc.xhtml'), 'html.parser')
        top = nav.find('nav').find('ol').find_all('li', recursive=False)
        assert [li.a['href'] for li in top] == [
            'chapter_1.xhtml',
            'chapter_2.xhtml',
            'appendices.xhtml',
            'colophon.xhtml',
        ]
        children = top[2].find('ol').find_all('li', recursive=False)
        assert [li.a.get_text() for li in children] == ['Errata', 'Index']

    def test_division_is_html5(self, builder, demo_book, tmp_path):
        output = builder.build(demo_book, OutputFormat.EPUB3, tmp_path / 'demo.epub')

        text = read_entry(output, 'intro.xhtml').decode()
        assert text.startswith('<!DOCTYPE html>')
        assert '<meta charset="UTF-8" />' in text

    def test_svg_and_cover_properties(self, settings, demo_book, write_source, tmp_path):
        fetcher = StubFetcher(
            {
                'http://example.com/cover.png': b'cover',
                'http://example.com/figure.svg': b'<svg/>',
            }
        )
        demo_book.cover = 'http://example.com/cover.png'
        demo_book.divisions[0].file = write_source(
            'intro.xhtml', '<p><img src="http://example.com/figure.svg"/></p>'
        )
        builder = EpubBuilder(settings=settings, fetcher=fetcher)

        output = builder.build(demo_book, OutputFormat.EPUB3, tmp_path / 'demo.epub')

        items = {item['href']: item for item in manifest_items(parse_opf(output))}
        assert items['images/cover.png']['properties'] == 'cover-image'
        assert items['images/figure.svg']['media-type'] == 'image/svg+xml'

    def test_svg_is_not_harvested_for_epub2(self, settings, write_source, tmp_path):
        fetcher = StubFetcher({'http://example.com/figure.svg': b'<svg/>'})
        book = Book(
            output='svg',
            title='SVG',
            divisions=[
                Division(
                    title='One',
                    file=write_source(
                        'one.xhtml', '<p><img src="http://example.com/figure.svg"/></p>'
                    ),
                )
            ],
        )
        builder = EpubBuilder(settings=settings, fetcher=fetcher)

        output = builder.build(book, OutputFormat.EPUB2, tmp_path / 'svg.epub')

        assert fetcher.requested == []
        assert 'src="http://example.com/figure.svg"' in read_entry(
            output, 'one.xhtml'
        ).decode()


class TestScriptsAndStyles:
    def test_scripts_are_packaged_and_linked(self, builder, demo_book, tmp_path):
        script = tmp_path / 'app.js'
        script.write_text('console.log(1);', encoding='utf-8')
        demo_book.scripts = [script]

        output = builder.build(demo_book, OutputFormat.EPUB3, tmp_path / 'demo.epub')

        assert read_entry(output, 'js/app.js') == b'console.log(1);'
        soup = BeautifulSoup(read_entry(output, 'intro.xhtml'), 'html.parser')
        script = soup.body.find('script')
        assert script['src'] == 'js/app.js'
        assert script['type'] == 'text/javascript'
        assert script['charset'] == 'utf-8'
        items = {item['id']: item for item in manifest_items(parse_opf(output))}
        assert items['app.js']['media-type'] == 'text/javascript'
        assert items['intro']['properties'] == 'scripted'

    def test_missing_script_is_resource_error(self, builder, demo_book, tmp_path):
        demo_book.scripts = [tmp_path / 'missing.js']

        with pytest.raises(ResourceError):
            builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')
        assert not (tmp_path / 'demo.epub').exists()

    def test_extra_stylesheet_is_appended(self, builder, demo_book, tmp_path):
        demo_book.extra_stylesheet = 'h1 { color: red; }'

        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        css = read_entry(output, 'css/book.css').decode()
        assert 'text-indent: 2.0em;' in css
        assert css.rstrip().endswith('h1 { color: red; }')

    def test_stylesheet_replaces_default(self, builder, demo_book, tmp_path):
        demo_book.stylesheet = 'body { margin: 0; }'

        output = builder.build(demo_book, OutputFormat.EPUB2, tmp_path / 'demo.epub')

        assert read_entry(output, 'css/book.css') == b'body { margin: 0; }'
