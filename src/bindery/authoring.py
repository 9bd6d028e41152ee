# FILE: src/bindery/authoring.py
"""
Pythonコードから書籍定義を組み立てるためのAPIです。

    builder = BookBuilder()
    builder.output('demo')
    builder.title('Demo')
    with builder.part('Appendices', 'appendices.xhtml') as part:
        part.appendix('Errata', 'errata.xhtml')
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

from .models.book import Book, Division, DivisionOptions, MetadataEntry
from .shared.enums import DivisionType, OutputFormat
from .shared.exceptions import ConfigurationError


class ContentMethods:
    """ディビジョンを追加するメソッド群。書籍とディビジョンの両方で使用します。"""

    divisions: list[Division]
    base_dir: Path | None

    def div(
        self,
        div_type: DivisionType | str,
        title: str | None,
        file: str | Path | None,
        *,
        body_only: bool = True,
        include_images: bool = True,
        url: str | None = None,
    ) -> 'DivisionBuilder':
        """
        ディビジョンを追加し、子を追加するためのビルダーを返します。

        Raises:
            ConfigurationError: タイトルまたはファイルが指定されていない場合。
        """
        if title is None:
            raise ConfigurationError('タイトルが指定されていません。', field='title')
        if file is None:
            raise ConfigurationError('ファイルが指定されていません。', field='file')
        try:
            division_type = DivisionType(div_type)
        except ValueError:
            division_type = DivisionType.CUSTOM

        path = Path(file)
        if self.base_dir is not None and not path.is_absolute():
            path = self.base_dir / path

        division = Division(
            type=division_type,
            title=title,
            file=path,
            options=DivisionOptions(
                body_only=body_only, include_images=include_images, url=url
            ),
        )
        self.divisions.append(division)
        return DivisionBuilder(division, self.base_dir)

    def chapter(
        self, title: str | None, file: str | Path | None, **options: Any
    ) -> 'DivisionBuilder':
        return self.div(DivisionType.CHAPTER, title, file, **options)

    def section(
        self, title: str | None, file: str | Path | None, **options: Any
    ) -> 'DivisionBuilder':
        return self.div(DivisionType.SECTION, title, file, **options)

    def part(
        self, title: str | None, file: str | Path | None, **options: Any
    ) -> 'DivisionBuilder':
        return self.div(DivisionType.PART, title, file, **options)

    def appendix(
        self, title: str | None, file: str | Path | None, **options: Any
    ) -> 'DivisionBuilder':
        return self.div(DivisionType.APPENDIX, title, file, **options)

    def index(
        self, title: str | None, file: str | Path | None, **options: Any
    ) -> 'DivisionBuilder':
        return self.div(DivisionType.INDEX, title, file, **options)


class DivisionBuilder(ContentMethods):
    """追加済みのディビジョンに子ディビジョンを追加するビルダー。"""

    def __init__(self, division: Division, base_dir: Path | None = None):
        self.division = division
        self.base_dir = base_dir

    @property
    def divisions(self) -> list[Division]:  # type: ignore[override]
        return self.division.divisions

    def __enter__(self) -> 'DivisionBuilder':
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


class BookBuilder(ContentMethods):
    """書籍定義を組み立てるビルダー。"""

    def __init__(self, base_dir: Path | None = None):
        self.book = Book()
        self.base_dir = base_dir

    @property
    def divisions(self) -> list[Division]:  # type: ignore[override]
        return self.book.divisions

    def output(self, basename: object) -> None:
        self.book.set_output(basename)

    def format(self, output_format: OutputFormat | str) -> None:
        """
        生成する形式を追加します。'epub' は 'epub2' の別名です。

        Raises:
            ConfigurationError: 未対応の形式の場合。
        """
        try:
            resolved = OutputFormat(output_format)
        except ValueError as e:
            raise ConfigurationError(
                f"未対応の出力形式です: '{output_format}'", field='formats'
            ) from e
        self.book.formats.append(resolved)

    def title(self, title: str) -> None:
        self.book.title = title

    def subtitle(self, subtitle: str) -> None:
        self.book.subtitle = subtitle

    def author(self, author: str) -> None:
        self.book.author = author

    def url(self, url: str) -> None:
        self.book.url = url

    def isbn(self, isbn: str) -> None:
        self.book.isbn = isbn

    def language(self, language: str) -> None:
        self.book.language = language

    def cover(self, reference: str | Path) -> None:
        self.book.cover = str(reference)

    def stylesheet(self, css: str) -> None:
        self.book.stylesheet = css

    def extra_stylesheet(self, css: str) -> None:
        self.book.extra_stylesheet = css

    def script(self, path: str | Path) -> None:
        script_path = Path(path)
        if self.base_dir is not None and not script_path.is_absolute():
            script_path = self.base_dir / script_path
        self.book.scripts.append(script_path)

    def metadata(self, name: str, value: object, **attributes: object) -> None:
        """
        Dublin Core などの追加メタデータを登録します。

        Raises:
            ConfigurationError: 未知の要素名の場合。
        """
        self.book.metadata.append(MetadataEntry.create(name, value, **attributes))


def define_book(
    configure: Callable[[BookBuilder], None], base_dir: Path | None = None
) -> Book:
    """関数で書籍定義を組み立て、生成前の検証を行ってから返します。"""
    builder = BookBuilder(base_dir=base_dir)
    configure(builder)
    builder.book.validate_for_generation()
    return builder.book
