# FILE: src/bindery/app.py
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from .domain.interfaces import IBuilder
from .infrastructure.builders.epub.formats import get_profile
from .infrastructure.builders.epub.identifiers import (
    IdentifierRegistry,
    flatten,
    resolve_divisions,
)
from .models.book import Book
from .shared.constants import PACKAGE_FIXED_IDS, PACKAGE_PATHS
from .shared.enums import OutputFormat
from .shared.exceptions import ConfigurationError
from .shared.settings import Settings

EPUB_EXTENSION = '.epub'


def normalize_formats(formats: Iterable[OutputFormat | str]) -> list[OutputFormat]:
    """
    要求された出力形式を正規化し、重複を取り除きます(順序は保持)。
    'epub' は 'epub2' の別名として扱います。

    Raises:
        ConfigurationError: 未対応の形式が含まれる場合。
    """
    normalized: list[OutputFormat] = []
    for value in formats:
        try:
            output_format = OutputFormat(value)
        except ValueError as e:
            raise ConfigurationError(
                f"未対応の出力形式です: '{value}'", field='formats'
            ) from e
        if output_format not in normalized:
            normalized.append(output_format)
    return normalized


def output_paths_for(
    book: Book, formats: list[OutputFormat], output_dir: Path
) -> dict[OutputFormat, Path]:
    """
    出力形式ごとの出力パスを決定します。
    形式が1つなら {output}.epub、複数なら {output}.{format}.epub とします。
    """
    base = book.output or ''
    if len(formats) == 1:
        return {formats[0]: output_dir / f'{base}{EPUB_EXTENSION}'}
    return {
        output_format: output_dir / f'{base}.{output_format.value}{EPUB_EXTENSION}'
        for output_format in formats
    }


class Application:
    """設定とビルダーをまとめ、書籍定義からEPUBを生成するユースケースを提供するクラス。"""

    def __init__(self, settings: Settings, builder: IBuilder):
        self.settings = settings
        self.builder = builder
        logger.debug('Binderyアプリケーションが初期化されました。')

    def generate(
        self,
        book: Book,
        formats: Iterable[OutputFormat | str] | None = None,
        output_dir: Path | None = None,
    ) -> list[Path]:
        """
        書籍定義を検証し、要求された形式ごとにEPUBを生成します。
        形式の指定がなく、書籍定義にも形式がない場合はEPUB2を生成します。

        Raises:
            ConfigurationError: 書籍定義に不備がある場合。ファイルは一切作成されません。
        """
        requested = list(formats) if formats else list(book.formats)
        resolved = normalize_formats(requested or [OutputFormat.EPUB2])
        book.validate_for_generation()

        directory = output_dir or self.settings.builder.output_directory
        paths = output_paths_for(book, resolved, directory)

        generated: list[Path] = []
        with logger.contextualize(book=book.output, title=book.title):
            logger.info(
                '{}形式のEPUBを生成します。',
                ', '.join(output_format.value for output_format in resolved),
            )
            for output_format, path in paths.items():
                generated.append(self.builder.build(book, output_format, path))
        return generated

    def check(self, book: Book) -> list[str]:
        """
        ファイルを書き込まずに書籍定義を検証し、生成されるエントリ名の一覧を返します。

        Raises:
            ConfigurationError: 書籍定義に不備がある場合。
        """
        book.validate_for_generation()
        formats = normalize_formats(book.formats or [OutputFormat.EPUB2])
        profile = get_profile(formats[0])
        registry = IdentifierRegistry(
            strict=self.settings.builder.strict_identifiers,
            reserved=[profile.nav_id, *PACKAGE_FIXED_IDS],
        )
        divisions = resolve_divisions(book, registry)
        return [node.output_file for node in flatten(divisions)] + [
            PACKAGE_PATHS.OPF_FILE
        ]
