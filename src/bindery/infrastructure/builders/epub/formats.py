# FILE: src/bindery/infrastructure/builders/epub/formats.py
"""
EPUBのバージョンごとに異なる振る舞いを、1つの設定オブジェクトにまとめます。
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from ....shared.constants import MIME_TYPES, PACKAGE_PATHS, RESERVED_IDS
from ....shared.enums import OutputFormat
from ....utils.media_types import EPUB2_IMAGE_TYPES, EPUB3_IMAGE_TYPES


@dataclass(frozen=True)
class EpubProfile:
    """単一のEPUBバージョンの定義。"""

    format: OutputFormat
    version: str
    template_dir: str
    nav_id: str
    nav_href: str
    nav_media_type: str
    nav_template: str
    image_media_types: Mapping[str, str]
    # 以下は EPUB3 でのみ有効
    nav_properties: str | None = None
    nav_in_spine: bool = False
    supports_properties: bool = False


EPUB2_PROFILE: Final = EpubProfile(
    format=OutputFormat.EPUB2,
    version='2.0',
    template_dir='epub2',
    nav_id=RESERVED_IDS.NCX,
    nav_href=PACKAGE_PATHS.NCX_FILE,
    nav_media_type=MIME_TYPES.NCX,
    nav_template='toc.ncx.j2',
    image_media_types=EPUB2_IMAGE_TYPES,
)

EPUB3_PROFILE: Final = EpubProfile(
    format=OutputFormat.EPUB3,
    version='3.0',
    template_dir='epub3',
    nav_id=RESERVED_IDS.NAV,
    nav_href=PACKAGE_PATHS.NAV_FILE,
    nav_media_type=MIME_TYPES.XHTML,
    nav_template='nav.xhtml.j2',
    image_media_types=EPUB3_IMAGE_TYPES,
    nav_properties='nav',
    nav_in_spine=True,
    supports_properties=True,
)

PROFILES: Final[Mapping[OutputFormat, EpubProfile]] = {
    OutputFormat.EPUB2: EPUB2_PROFILE,
    OutputFormat.EPUB3: EPUB3_PROFILE,
}


def get_profile(output_format: OutputFormat) -> EpubProfile:
    return PROFILES[output_format]
