# FILE: src/bindery/shared/exceptions.py
from pathlib import Path


class BinderyError(Exception):
    """アプリケーションの基底例外クラス。"""

    pass


class SettingsError(BinderyError):
    """設定関連のエラー。"""

    pass


class ConfigurationError(BinderyError):
    """書籍定義の不備(必須項目の欠落、重複指定など)によるエラー。"""

    def __init__(self, message: str, field: str | None = None):
        if field:
            super().__init__(f'[{field}] {message}')
        else:
            super().__init__(message)
        self.field = field


class ResourceError(BinderyError):
    """ディビジョンの原稿やスクリプトファイルが読み込めない場合のエラー。"""

    def __init__(self, message: str, path: Path | str | None = None):
        if path is not None:
            super().__init__(f'{message}: {path}')
        else:
            super().__init__(message)
        self.path = path


class FetchError(BinderyError):
    """画像などの外部リソースの取得に失敗した場合のエラー。"""

    def __init__(
        self, message: str, url: str | None = None, status_code: int | None = None
    ):
        if url:
            super().__init__(f'{message} ({url})')
        else:
            super().__init__(message)
        self.url = url
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        """リトライしても回復しない4xx系のエラーかどうか。"""
        return self.status_code is not None and 400 <= self.status_code < 500


class BuildError(BinderyError):
    """ビルド処理中のエラーの基底クラス。"""

    pass


class DuplicateIdentifierError(BuildError):
    """異なるファイルから同一のXML識別子が導出された場合のエラー。"""

    def __init__(self, identifier: str, first: str, second: str):
        super().__init__(
            f"識別子 '{identifier}' が重複しています: {first} と {second}"
        )
        self.identifier = identifier
        self.first = first
        self.second = second


class ArchiveError(BuildError):
    """EPUBアーカイブの書き込み中に発生したエラー。"""

    pass


class TemplateError(BuildError):
    """テンプレートのレンダリング中に発生したエラー。"""

    pass
