# FILE: src/bindery/models/book.py
"""
書籍定義(Book)と本文のディビジョンツリーを表すデータモデルを定義します。
生成処理の間、これらのモデルは読み取り専用として扱われます。
"""

import uuid
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..shared.constants import METADATA_ELEMENTS
from ..shared.enums import DivisionType, MetadataKind, OutputFormat
from ..shared.exceptions import ConfigurationError


class DivisionOptions(BaseModel):
    """ディビジョンごとの生成オプション。"""

    model_config = ConfigDict(frozen=True, extra='forbid')

    # True の場合、原稿は<body>の中身のみで、XHTMLの外枠を補う必要がある
    body_only: bool = True
    include_images: bool = True
    # 原稿中の相対画像URLを解決するためのベースURL
    url: str | None = None


class Division(BaseModel):
    """本文ツリーの1ノード(章、部、節、付録など)。"""

    model_config = ConfigDict(extra='forbid')

    type: DivisionType = DivisionType.CHAPTER
    title: str | None = None
    file: Path | None = None
    options: DivisionOptions = Field(default_factory=DivisionOptions)
    divisions: list['Division'] = Field(default_factory=list)

    @property
    def body_only(self) -> bool:
        return self.options.body_only

    @property
    def include_images(self) -> bool:
        return self.options.include_images

    @property
    def depth(self) -> int:
        """葉は1、親は 1 + 子の最大深さ。"""
        return 1 + max((child.depth for child in self.divisions), default=0)


Division.model_rebuild()


class MetadataEntry(BaseModel):
    """OPFに出力される追加メタデータ。"""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    attributes: dict[str, str] = Field(default_factory=dict)
    kind: MetadataKind = MetadataKind.DUBLIN_CORE

    @classmethod
    def create(cls, name: str, value: Any, **attributes: Any) -> 'MetadataEntry':
        """要素名から出力形式を判定してエントリを生成します。"""
        kind = METADATA_ELEMENTS.get(name)
        if kind is None:
            raise ConfigurationError(
                f"未知のメタデータ要素です: '{name}'", field='metadata'
            )
        return cls(
            name=name,
            value=str(value),
            attributes={key: str(val) for key, val in attributes.items()},
            kind=kind,
        )


class Book(BaseModel):
    """書籍全体を表す集約ルート。"""

    model_config = ConfigDict(extra='forbid')

    output: str | None = None
    title: str | None = None
    subtitle: str | None = None
    author: str | None = None
    language: str | None = None
    url: str | None = None
    isbn: str | None = None
    cover: str | None = None
    stylesheet: str | None = None
    extra_stylesheet: str | None = None
    metadata: list[MetadataEntry] = Field(default_factory=list)
    scripts: list[Path] = Field(default_factory=list)
    divisions: list[Division] = Field(default_factory=list)
    formats: list[OutputFormat] = Field(default_factory=list)

    def __setattr__(self, name: str, value: Any) -> None:
        # output は一度設定したら変更できない
        if name == 'output' and self.output is not None:
            raise ConfigurationError(
                f"出力名は既に '{self.output}' に設定されています。", field='output'
            )
        super().__setattr__(name, value)

    def set_output(self, basename: object) -> None:
        """出力ファイルのベース名を設定します。一度しか設定できません。"""
        self.output = str(basename)

    @property
    def full_title(self) -> str:
        title = self.title or ''
        return f'{title}: {self.subtitle}' if self.subtitle else title

    @property
    def depth(self) -> int:
        return max((division.depth for division in self.divisions), default=0)

    @property
    def identifier(self) -> str:
        """BookId として使用する識別子。ISBNを優先し、次にURLを使用します。"""
        if self.isbn:
            return self.isbn
        if self.url:
            return self.url
        seed = f'{self.output or ""}:{self.title or ""}'
        return f'urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, seed)}'

    def validate_for_generation(self) -> None:
        """
        ファイル入出力の前に書籍定義を検証します。

        Raises:
            ConfigurationError: 必須項目が欠けている場合。項目名を含みます。
        """
        if not self.title:
            raise ConfigurationError('タイトルが指定されていません。', field='title')
        if not self.output:
            raise ConfigurationError('出力名が指定されていません。', field='output')
        if not self.divisions:
            raise ConfigurationError(
                'ディビジョンが1つも定義されていません。', field='divisions'
            )
        _validate_divisions(self.divisions, 'divisions')


def _validate_divisions(divisions: list[Division], path: str) -> None:
    for i, division in enumerate(divisions):
        field_path = f'{path}[{i}]'
        if division.title is None:
            raise ConfigurationError(
                'タイトルが指定されていません。', field=f'{field_path}.title'
            )
        if division.file is None:
            raise ConfigurationError(
                'ファイルが指定されていません。', field=f'{field_path}.file'
            )
        _validate_divisions(division.divisions, f'{field_path}.divisions')


def walk(node: Division, visit: Callable[[Division], None]) -> None:
    """ノード自身を訪問した後、子をリスト順に再帰的に訪問します(前順走査)。"""
    visit(node)
    for child in node.divisions:
        walk(child, visit)


def iter_divisions(divisions: Iterable[Division]) -> Iterator[Division]:
    """ディビジョンのリストを前順走査で平坦化して返します。"""
    for division in divisions:
        yield division
        yield from iter_divisions(division.divisions)
