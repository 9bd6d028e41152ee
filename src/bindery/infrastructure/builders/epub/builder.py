# FILE: src/bindery/infrastructure/builders/epub/builder.py
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    select_autoescape,
)
from jinja2 import TemplateError as JinjaTemplateError
from loguru import logger

from ....domain.interfaces import IResourceFetcher
from ....models.book import Book, iter_divisions
from ....models.domain import ManifestEntry, ManifestItem, ResolvedDivision
from ....shared.constants import MIME_TYPES, PACKAGE_FIXED_IDS, PACKAGE_PATHS
from ....shared.enums import OutputFormat
from ....shared.exceptions import (
    ArchiveError,
    BinderyError,
    BuildError,
    ResourceError,
    TemplateError,
)
from ....shared.settings import Settings
from ....shared.themes import DEFAULT_THEME, Theme
from ....utils.filesystem_sanitizer import (
    sanitize_path_part,
    sanitize_xml_id,
    unique_file_name,
)
from ...fetchers.resource_fetcher import ResourceFetcher
from ..base import BaseBuilder
from .component_generator import EpubComponentGenerator
from .content_wrapper import ContentWrapper, parse_source
from .formats import EpubProfile, get_profile
from .identifiers import IdentifierRegistry, flatten, resolve_divisions
from .image_harvester import AssetNamespace, ImageHarvester
from .package_assembler import EpubArchiveWriter, EpubPackageAssembler

COMMON_TEMPLATE_DIR = 'common'
AUTOESCAPE_EXTENSIONS = ('xhtml.j2', 'opf.j2', 'ncx.j2')


class EpubBuilder(BaseBuilder):
    """EPUB生成プロセスを統括するクラス。"""

    def __init__(
        self,
        settings: Settings,
        fetcher: IResourceFetcher | None = None,
        theme: Theme = DEFAULT_THEME,
    ):
        super().__init__(settings)
        self.fetcher = fetcher or ResourceFetcher(self.settings.fetcher)
        self.theme = theme
        self.assembler = EpubPackageAssembler()

    @classmethod
    def get_builder_name(cls) -> str:
        return 'epub'

    def build(self, book: Book, output_format: OutputFormat, output_path: Path) -> Path:
        """
        EPUBファイルを生成するメインの実行メソッド。

        Raises:
            ConfigurationError: 書籍定義に不備がある場合(ファイル入出力の前に検出)。
            ResourceError: 原稿やスクリプトが読み込めない場合。
            BuildError: テンプレートやアーカイブの書き込みに失敗した場合。
        """
        book.validate_for_generation()
        self._check_resources(book)

        profile = get_profile(output_format)
        log = logger.bind(format=profile.format.value, output_path=str(output_path))
        log.info('EPUB作成処理を開始')

        try:
            self._assemble(book, profile, output_path)
        except BinderyError:
            raise
        except JinjaTemplateError as e:
            template_name = getattr(e, 'name', 'N/A')
            logger.bind(template_name=template_name).error(
                f"テンプレート '{template_name}' のレンダリングに失敗しました。"
            )
            raise TemplateError(f'テンプレートエラー: {e}') from e
        except OSError as e:
            raise ArchiveError(f'EPUBアーカイブの書き込みに失敗しました: {e}') from e

        log.success('EPUBファイルの作成成功')
        return output_path

    def _assemble(self, book: Book, profile: EpubProfile, output_path: Path) -> None:
        language = book.language or self.settings.builder.default_language
        template_env = create_template_env(self.theme, profile)

        registry = IdentifierRegistry(
            strict=self.settings.builder.strict_identifiers,
            reserved=[profile.nav_id, *PACKAGE_FIXED_IDS],
        )
        scripts = self._resolve_scripts(book, registry)
        divisions = resolve_divisions(book, registry)
        namespace = AssetNamespace(registry)

        harvester = ImageHarvester(
            self.fetcher,
            namespace,
            profile,
            max_workers=self.settings.fetcher.max_workers,
        )
        wrapper = ContentWrapper(
            template_env,
            self.theme,
            language,
            script_hrefs=[item.href for _, item in scripts],
        )
        generator = EpubComponentGenerator(
            book, profile, template_env, self.theme, language
        )

        with self.assembler.open(output_path) as archive:
            archive.write_container()
            cover_entry = self._write_cover(book, harvester, archive)

            for node in flatten(divisions):
                self._write_division(node, harvester, wrapper, archive)

            archive.write(PACKAGE_PATHS.STYLESHEET_FILE, generator.generate_css())
            for path, item in scripts:
                archive.write(item.href, self._read_bytes(path))

            # OPFと目次は全ディビジョンと画像が確定した後に書き込む
            manifest_items = generator.build_manifest(
                divisions, [item for _, item in scripts], namespace.entries
            )
            spine_itemrefs = generator.build_spine(divisions)
            archive.write(
                PACKAGE_PATHS.OPF_FILE,
                generator.generate_opf(manifest_items, spine_itemrefs, cover_entry),
            )
            nav_points = generator.build_nav_points(divisions)
            depth = max((node.depth for node in divisions), default=0)
            archive.write(profile.nav_href, generator.generate_nav(nav_points, depth))

        logger.bind(
            divisions=len(flatten(divisions)),
            images=len(namespace.entries),
        ).debug('マニフェストを書き込みました。')

    def _write_division(
        self,
        node: ResolvedDivision,
        harvester: ImageHarvester,
        wrapper: ContentWrapper,
        archive: EpubArchiveWriter,
    ) -> None:
        """単一のディビジョンの画像を取り込み、XHTML文書をアーカイブに書き込みます。"""
        division = node.division
        source_path = Path(division.file or '')
        doc = parse_source(self._read_text(source_path))

        if division.include_images:
            for image in harvester.harvest(
                doc, base_url=division.options.url, source_dir=source_path.parent
            ):
                archive.write(image.entry.file_name, image.content)

        archive.write(node.output_file, wrapper.wrap(doc, node))
        logger.bind(division_id=node.xml_id).debug('ディビジョンを書き込みました。')

    def _write_cover(
        self, book: Book, harvester: ImageHarvester, archive: EpubArchiveWriter
    ) -> ManifestEntry | None:
        if not book.cover:
            return None
        image = harvester.harvest_cover(book.cover)
        if image is None:
            logger.bind(cover=book.cover).warning('表紙画像を取り込めませんでした。')
            return None
        archive.write(image.entry.file_name, image.content)
        return image.entry

    def _resolve_scripts(
        self, book: Book, registry: IdentifierRegistry
    ) -> list[tuple[Path, ManifestItem]]:
        """スクリプトごとに js/ 以下の衝突しないファイル名と識別子を割り当てます。"""
        hrefs: set[str] = set()
        scripts = []
        for path in book.scripts:
            stem = sanitize_path_part(path.stem) or 'script'
            href = unique_file_name(hrefs, PACKAGE_PATHS.JS_DIR, stem, path.suffix)
            hrefs.add(href)
            xml_id = registry.claim(
                sanitize_xml_id(Path(href).name, fallback='script'), owner=str(path)
            )
            scripts.append(
                (
                    path,
                    ManifestItem(id=xml_id, href=href, media_type=MIME_TYPES.JAVASCRIPT),
                )
            )
        return scripts

    def _check_resources(self, book: Book) -> None:
        """アーカイブを開く前に、全ての原稿とスクリプトが読み込めることを確認します。"""
        for division in iter_divisions(book.divisions):
            if division.file is None or not division.file.is_file():
                raise ResourceError('原稿ファイルが見つかりません', path=division.file)
        for script in book.scripts:
            if not script.is_file():
                raise ResourceError('スクリプトファイルが見つかりません', path=script)

    def _read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise ResourceError(f'原稿ファイルを読み込めません ({e})', path=path) from e

    def _read_bytes(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise ResourceError(f'ファイルを読み込めません ({e})', path=path) from e


def create_template_env(theme: Theme, profile: EpubProfile) -> Environment:
    """バージョン別のテンプレートを優先し、共通テンプレートで補うJinja2環境を生成します。"""
    version_dir = theme.path / profile.template_dir
    common_dir = theme.path / COMMON_TEMPLATE_DIR
    for directory in (version_dir, common_dir):
        if not directory.is_dir():
            raise BuildError(f'テンプレートディレクトリが見つかりません: {directory}')

    logger.bind(theme=theme.name, template_dir=str(version_dir)).debug(
        'テンプレートを読み込みます。'
    )
    loader = ChoiceLoader(
        [FileSystemLoader(str(version_dir)), FileSystemLoader(str(common_dir))]
    )
    return Environment(
        loader=loader,
        autoescape=select_autoescape(
            enabled_extensions=AUTOESCAPE_EXTENSIONS, default=False
        ),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
