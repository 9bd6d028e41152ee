# src/bindery/utils/media_types.py
"""
ファイル拡張子とMIMEタイプに関連する共有ユーティリティ。
"""

from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Final

from ..shared.constants import MIME_TYPES

# EPUB2 で取り込み可能な画像の拡張子
EPUB2_IMAGE_TYPES: Final[Mapping[str, str]] = {
    '.jpg': MIME_TYPES.JPEG,
    '.jpeg': MIME_TYPES.JPEG,
    '.png': MIME_TYPES.PNG,
    '.gif': MIME_TYPES.GIF,
}

# EPUB3 は SVG を追加でサポートする
EPUB3_IMAGE_TYPES: Final[Mapping[str, str]] = {
    **EPUB2_IMAGE_TYPES,
    '.svg': MIME_TYPES.SVG,
}


def get_media_type_from_filename(
    filename: str, table: Mapping[str, str] = EPUB3_IMAGE_TYPES
) -> str | None:
    """ファイル名の拡張子からMIMEタイプを返します。未対応の拡張子はNoneを返します。"""
    return table.get(PurePosixPath(filename).suffix.lower())
