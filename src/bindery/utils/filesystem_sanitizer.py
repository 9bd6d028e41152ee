# FILE: src/bindery/utils/filesystem_sanitizer.py

import re
from collections.abc import Container
from pathlib import PurePosixPath

# 定数をこのファイル内に配置
INVALID_PATH_CHARS_REGEX = r'[\\/:*?"<>|\s]+'
INVALID_XML_ID_CHARS_REGEX = r'[^A-Za-z0-9_.-]+'
XML_ID_START_REGEX = r'^[A-Za-z_]'


def sanitize_path_part(part: str, replacement: str = '_') -> str:
    """ファイル/ディレクトリ名として安全でない文字を置換します。"""
    return re.sub(INVALID_PATH_CHARS_REGEX, replacement, part).strip(replacement)


def sanitize_xml_id(value: str, fallback: str) -> str:
    """
    任意の文字列をXMLの識別子(NCName)として使用できる形に正規化します。
    不正な文字の連続は単一の'-'に置換し、先頭が英字または'_'でない場合は'_'を補います。
    """
    sanitized = re.sub(INVALID_XML_ID_CHARS_REGEX, '-', value).strip('-')
    if not sanitized:
        return fallback
    if not re.match(XML_ID_START_REGEX, sanitized):
        sanitized = f'_{sanitized}'
    return sanitized


def unique_file_name(existing: Container[str], directory: str, stem: str, suffix: str) -> str:
    """
    `directory/stem+suffix` が既存の名前と衝突する場合、
    `stem_N+suffix` (Nは1から) の形で空いている名前を返します。
    """
    candidate = (PurePosixPath(directory) / f'{stem}{suffix}').as_posix()
    n = 0
    while candidate in existing:
        n += 1
        candidate = (PurePosixPath(directory) / f'{stem}_{n}{suffix}').as_posix()
    return candidate
