# src/bindery/shared/enums.py
from enum import Enum


class OutputFormat(str, Enum):
    """
    サポートされている出力フォーマット。
    strを継承することで、'=='による文字列比較とEnumの型安全性を両立する。
    """

    EPUB2 = 'epub2'
    EPUB3 = 'epub3'

    @classmethod
    def _missing_(cls, value: object) -> 'OutputFormat | None':
        # 'epub' は後方互換のため 'epub2' の別名として扱う
        normalized = str(value).lower()
        if normalized == 'epub':
            return cls.EPUB2
        for member in cls:
            if member.value == normalized:
                return member
        return None


class DivisionType(str, Enum):
    """本文を構成するディビジョンの種別。"""

    CHAPTER = 'chapter'
    SECTION = 'section'
    PART = 'part'
    APPENDIX = 'appendix'
    INDEX = 'index'
    CUSTOM = 'custom'


class MetadataKind(str, Enum):
    """追加メタデータの出力形式"""

    DUBLIN_CORE = 'dublin_core'  # <dc:name>value</dc:name>
    SPECIAL = 'special'  # <meta name="..." content="..."/>
