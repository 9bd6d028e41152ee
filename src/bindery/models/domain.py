# FILE: src/bindery/models/domain.py
"""
EPUBビルド処理の途中で生成される中間データモデルを定義します。
いずれも1回の生成処理の間だけ存在し、処理後に破棄されます。
"""

from pydantic import BaseModel, Field

from .book import Division


# --- 識別子解決 ---
class ResolvedDivision(BaseModel, frozen=True):
    """識別子・出力ファイル名・深さが確定したディビジョン。"""

    division: Division
    xml_id: str
    output_file: str
    depth: int
    children: list['ResolvedDivision'] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.division.title or ''

    @property
    def label(self) -> str:
        """目次に表示する文字列。タイトルが空の場合は識別子を使用します。"""
        return self.title.strip() or self.xml_id


ResolvedDivision.model_rebuild()


# --- マニフェスト関連 ---
class ManifestEntry(BaseModel, frozen=True):
    """ディビジョン以外のパッケージリソース(現状は取り込んだ画像)。"""

    file_name: str
    xml_id: str
    mime_type: str
    properties: str | None = None


class ManifestItem(BaseModel, frozen=True):
    """OPFの <item> 要素。"""

    id: str
    href: str
    media_type: str
    properties: str | None = None


class SpineItemRef(BaseModel, frozen=True):
    """OPFの <itemref> 要素。"""

    idref: str
    linear: bool = True


class NavPoint(BaseModel, frozen=True):
    """目次の1エントリ。NCXの navPoint と EPUB3 の li の両方に対応します。"""

    id: str
    label: str
    href: str
    css_class: str
    play_order: int
    children: list['NavPoint'] = Field(default_factory=list)


NavPoint.model_rebuild()


class HarvestedImage(BaseModel, frozen=True):
    """取り込みに成功し、アーカイブへ書き込む画像。"""

    entry: ManifestEntry
    content: bytes
