# FILE: src/bindery/infrastructure/repositories/book_file.py
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ...domain.interfaces import IBookRepository
from ...models.book import Book, Division, DivisionOptions, MetadataEntry
from ...shared.enums import DivisionType, OutputFormat
from ...shared.exceptions import ConfigurationError, ResourceError


class DivisionRecord(BaseModel):
    """書籍ファイル中の [[divisions]] テーブル。"""

    model_config = ConfigDict(extra='forbid')

    type: DivisionType = DivisionType.CHAPTER
    title: str | None = None
    file: str | None = None
    body_only: bool = True
    include_images: bool = True
    url: str | None = None
    divisions: list['DivisionRecord'] = Field(default_factory=list)


DivisionRecord.model_rebuild()


class MetadataRecord(BaseModel):
    """書籍ファイル中の [[metadata]] テーブル。"""

    model_config = ConfigDict(extra='forbid')

    name: str
    value: str | int | float
    attributes: dict[str, str] = Field(default_factory=dict)


class BookRecord(BaseModel):
    """書籍ファイル全体のスキーマ。"""

    model_config = ConfigDict(extra='forbid')

    output: str | None = None
    title: str | None = None
    subtitle: str | None = None
    author: str | None = None
    language: str | None = None
    url: str | None = None
    isbn: str | None = None
    cover: str | None = None
    formats: list[str] = Field(default_factory=list)
    scripts: list[str] = Field(default_factory=list)
    stylesheet: str | None = None
    stylesheet_file: str | None = None
    extra_stylesheet: str | None = None
    extra_stylesheet_file: str | None = None
    metadata: list[MetadataRecord] = Field(default_factory=list)
    divisions: list[DivisionRecord] = Field(default_factory=list)


class TomlBookRepository(IBookRepository):
    """
    TOML形式の書籍ファイル (book.toml) を読み込むリポジトリ。
    相対パスは書籍ファイルのあるディレクトリを基準に解決します。
    """

    def load(self, path: Path) -> Book:
        log = logger.bind(book_file=str(path))
        raw = self._read(path)
        try:
            record = BookRecord.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(
                f'書籍ファイルの形式が不正です:\n{e}', field=str(path)
            ) from e

        base_dir = path.resolve().parent
        book = Book(
            output=record.output,
            title=record.title,
            subtitle=record.subtitle,
            author=record.author,
            language=record.language,
            url=record.url,
            isbn=record.isbn,
            cover=self._resolve_reference(record.cover, base_dir),
            stylesheet=self._inline_or_file(
                record.stylesheet, record.stylesheet_file, base_dir, 'stylesheet'
            ),
            extra_stylesheet=self._inline_or_file(
                record.extra_stylesheet,
                record.extra_stylesheet_file,
                base_dir,
                'extra_stylesheet',
            ),
            metadata=[
                MetadataEntry.create(entry.name, entry.value, **entry.attributes)
                for entry in record.metadata
            ],
            scripts=[base_dir / script for script in record.scripts],
            divisions=[
                self._to_division(division, base_dir) for division in record.divisions
            ],
            formats=[self._to_format(value) for value in record.formats],
        )
        log.bind(divisions=len(book.divisions)).debug('書籍ファイルを読み込みました。')
        return book

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with path.open('rb') as f:
                return tomllib.load(f)
        except OSError as e:
            raise ResourceError(f'書籍ファイルを読み込めません ({e})', path=path) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(
                f'書籍ファイルの解析に失敗しました: {e}', field=str(path)
            ) from e

    def _to_format(self, value: str) -> OutputFormat:
        try:
            return OutputFormat(value)
        except ValueError as e:
            raise ConfigurationError(
                f"未対応の出力形式です: '{value}'", field='formats'
            ) from e

    def _to_division(self, record: DivisionRecord, base_dir: Path) -> Division:
        return Division(
            type=record.type,
            title=record.title,
            file=base_dir / record.file if record.file is not None else None,
            options=DivisionOptions(
                body_only=record.body_only,
                include_images=record.include_images,
                url=record.url,
            ),
            divisions=[self._to_division(child, base_dir) for child in record.divisions],
        )

    def _inline_or_file(
        self, inline: str | None, file_name: str | None, base_dir: Path, field: str
    ) -> str | None:
        if inline is not None and file_name is not None:
            raise ConfigurationError(
                f'{field} と {field}_file は同時に指定できません。', field=field
            )
        if file_name is None:
            return inline
        path = base_dir / file_name
        try:
            return path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise ResourceError(
                f'スタイルシートを読み込めません ({e})', path=path
            ) from e

    def _resolve_reference(self, reference: str | None, base_dir: Path) -> str | None:
        """URLはそのまま、ローカルパスは書籍ファイルからの相対パスとして解決します。"""
        if reference is None:
            return None
        parts = urlsplit(reference)
        if parts.scheme or parts.netloc:
            return reference
        return str(base_dir / reference)
