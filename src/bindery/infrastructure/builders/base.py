# FILE: src/bindery/infrastructure/builders/base.py
from abc import ABC, abstractmethod
from pathlib import Path

from ...models.book import Book
from ...shared.enums import OutputFormat
from ...shared.settings import Settings


class BaseBuilder(ABC):
    """Builderの抽象基底クラス。"""

    def __init__(
        self,
        settings: Settings,
    ):
        """
        Args:
            settings (Settings): アプリケーション設定。
        """
        self.settings = settings

    @classmethod
    @abstractmethod
    def get_builder_name(cls) -> str:
        """このビルダーの一意な名前を返します。"""
        raise NotImplementedError

    @abstractmethod
    def build(self, book: Book, output_format: OutputFormat, output_path: Path) -> Path:
        """ビルド処理を実行し、生成されたファイルのパスを返します。"""
        raise NotImplementedError
