# FILE: src/bindery/infrastructure/builders/epub/identifiers.py
from collections.abc import Container, Iterable
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlsplit

from loguru import logger

from ....models.book import Book, Division
from ....models.domain import ResolvedDivision
from ....shared.constants import PACKAGE_PATHS
from ....shared.exceptions import ConfigurationError, DuplicateIdentifierError
from ....utils.filesystem_sanitizer import (
    sanitize_path_part,
    sanitize_xml_id,
    unique_file_name,
)

DEFAULT_DIVISION_ID = 'division'
DEFAULT_ASSET_STEM = 'image'


def identifier_for(path: Path | str) -> str:
    """ファイル名(拡張子を除く)からXML識別子を導出します。"""
    stem = PurePosixPath(Path(path).as_posix()).stem
    return sanitize_xml_id(stem, fallback=DEFAULT_DIVISION_ID)


def asset_path_for(
    existing_names: Container[str],
    url: str,
    directory: str = PACKAGE_PATHS.IMAGES_DIR,
) -> str:
    """
    URLのパス部分からアーカイブ内の衝突しないファイル名を割り当てます。
    例: images/foo.png が使用済みなら images/foo_1.png
    """
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    suffix = PurePosixPath(name).suffix.lower()
    stem = sanitize_path_part(name[: len(name) - len(suffix)] if suffix else name)
    return unique_file_name(existing_names, directory, stem or DEFAULT_ASSET_STEM, suffix)


class IdentifierRegistry:
    """
    パッケージ内のすべてのXML識別子を1つの名前空間で管理します。
    衝突時は `_N` を付与して解決するか、strict モードでは例外を送出します。
    """

    def __init__(self, strict: bool = False, reserved: Iterable[str] = ()):
        self.strict = strict
        self._owners: dict[str, str] = {}
        for identifier in reserved:
            self._owners[identifier] = f'<reserved:{identifier}>'

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._owners

    def claim(self, candidate: str, owner: str) -> str:
        """候補の識別子を登録し、実際に割り当てられた識別子を返します。"""
        if candidate not in self._owners:
            self._owners[candidate] = owner
            return candidate

        if self.strict:
            raise DuplicateIdentifierError(candidate, self._owners[candidate], owner)

        n = 1
        while f'{candidate}_{n}' in self._owners:
            n += 1
        resolved = f'{candidate}_{n}'
        logger.bind(
            identifier=candidate,
            resolved=resolved,
            first=self._owners[candidate],
            second=owner,
        ).warning('識別子が重複したため連番を付与しました。')
        self._owners[resolved] = owner
        return resolved


def resolve_divisions(book: Book, registry: IdentifierRegistry) -> list[ResolvedDivision]:
    """ディビジョンツリーを前順走査し、識別子・出力ファイル名・深さを確定します。"""

    def resolve(division: Division) -> ResolvedDivision:
        if division.file is None:
            raise ConfigurationError('ファイルが指定されていません。', field='file')
        xml_id = registry.claim(identifier_for(division.file), owner=str(division.file))
        # 子より先に親の識別子を確定させ、前順で番号が振られるようにする
        children = [resolve(child) for child in division.divisions]
        return ResolvedDivision(
            division=division,
            xml_id=xml_id,
            output_file=f'{xml_id}{PACKAGE_PATHS.DIVISION_SUFFIX}',
            depth=1 + max((child.depth for child in children), default=0),
            children=children,
        )

    return [resolve(division) for division in book.divisions]


def flatten(resolved: Iterable[ResolvedDivision]) -> list[ResolvedDivision]:
    """解決済みツリーを前順走査で平坦化します。"""
    result: list[ResolvedDivision] = []
    for node in resolved:
        result.append(node)
        result.extend(flatten(node.children))
    return result
