# FILE: src/bindery/domain/interfaces.py

from pathlib import Path
from typing import Protocol, runtime_checkable

from ..models.book import Book
from ..shared.enums import OutputFormat


class IBuilder(Protocol):
    """成果物をビルドするためのインターフェース。"""

    def build(self, book: Book, output_format: OutputFormat, output_path: Path) -> Path:
        """
        書籍定義から指定フォーマットの成果物をビルドし、そのパスを返します。

        Args:
            book (Book): 検証済みの書籍定義。生成中は読み取り専用として扱われます。
            output_format (OutputFormat): 出力フォーマット。
            output_path (Path): 最終的な出力先パス。

        Returns:
            Path: 生成された成果物のパス。
        """
        ...


@runtime_checkable
class IResourceFetcher(Protocol):
    """画像などの外部リソースを取得するインターフェース。"""

    def fetch(self, url: str, base_dir: Path | None = None) -> bytes:
        """
        URL(またはローカルパス)の内容を返します。

        Raises:
            FetchError: 取得できなかった場合。
        """
        ...


class IBookRepository(Protocol):
    """書籍定義を読み込むためのインターフェース。"""

    def load(self, path: Path) -> Book:
        """
        指定されたファイルから書籍定義を読み込みます。

        Raises:
            ConfigurationError: 定義の形式が不正な場合。
            ResourceError: ファイルを読み込めない場合。
        """
        ...
