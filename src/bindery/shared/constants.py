# src/bindery/shared/constants.py
from dataclasses import dataclass
from typing import Final

from .enums import MetadataKind


# --- 1. Package Structure ---
@dataclass(frozen=True)
class PackagePaths:
    """
    EPUBコンテナ内のディレクトリ・ファイル構造を定義する。
    builders/epub/ 以下のモジュールがこれを参照する。
    """

    META_INF_DIR: str = 'META-INF'
    JS_DIR: str = 'js'
    IMAGES_DIR: str = 'images'
    STYLESHEET_FILE: str = 'css/book.css'
    OPF_FILE: str = 'book.opf'
    NCX_FILE: str = 'book.ncx'
    NAV_FILE: str = 'toc.xhtml'
    DIVISION_SUFFIX: str = '.xhtml'


PACKAGE_PATHS: Final = PackagePaths()


# --- 2. Mime Types ---
@dataclass(frozen=True)
class MimeTypes:
    """
    MIMEタイプの中央定義
    """

    JPEG: str = 'image/jpeg'
    PNG: str = 'image/png'
    GIF: str = 'image/gif'
    SVG: str = 'image/svg+xml'
    XHTML: str = 'application/xhtml+xml'
    CSS: str = 'text/css'
    JAVASCRIPT: str = 'text/javascript'
    NCX: str = 'application/x-dtbncx+xml'


MIME_TYPES: Final = MimeTypes()


# --- 3. Manifest IDs ---
@dataclass(frozen=True)
class ReservedIds:
    """
    マニフェスト内で固定的に使用されるXML識別子。
    """

    NCX: str = 'ncx'
    NAV: str = 'toc'
    STYLESHEET: str = 'stylesheet'
    BOOK_ID: str = 'BookId'
    CREATOR: str = 'Creator'


RESERVED_IDS: Final = ReservedIds()

# ディビジョンや画像に割り当ててはならない、OPF内の固定識別子。
# ナビゲーション文書の識別子は出力形式ごとに異なるため含めない。
PACKAGE_FIXED_IDS: Final = (
    RESERVED_IDS.STYLESHEET,
    RESERVED_IDS.BOOK_ID,
    RESERVED_IDS.CREATOR,
)


# --- 4. Metadata Elements ---
# Dublin Core の要素名と出力形式の対応表。
# 'cover' のみ <meta> として出力する特殊要素。
METADATA_ELEMENTS: Final[dict[str, MetadataKind]] = {
    'contributor': MetadataKind.DUBLIN_CORE,
    'cover': MetadataKind.SPECIAL,
    'coverage': MetadataKind.DUBLIN_CORE,
    'creator': MetadataKind.DUBLIN_CORE,
    'date': MetadataKind.DUBLIN_CORE,
    'description': MetadataKind.DUBLIN_CORE,
    'format': MetadataKind.DUBLIN_CORE,
    'identifier': MetadataKind.DUBLIN_CORE,
    'language': MetadataKind.DUBLIN_CORE,
    'publisher': MetadataKind.DUBLIN_CORE,
    'relation': MetadataKind.DUBLIN_CORE,
    'rights': MetadataKind.DUBLIN_CORE,
    'source': MetadataKind.DUBLIN_CORE,
    'subject': MetadataKind.DUBLIN_CORE,
    'title': MetadataKind.DUBLIN_CORE,
    'type': MetadataKind.DUBLIN_CORE,
}


# --- 5. Environment Keys ---
@dataclass(frozen=True)
class EnvKeys:
    """
    Pydantic BaseSettings (settings.py) と連動する環境変数キー。
    """

    PREFIX: str = 'BINDERY_'
    DELIMITER: str = '__'


ENV_KEYS: Final = EnvKeys()
