# FILE: src/bindery/infrastructure/builders/epub/image_harvester.py
import concurrent.futures
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urljoin, urlsplit
from urllib.request import url2pathname

from bs4 import BeautifulSoup, Tag
from loguru import logger

from ....domain.interfaces import IResourceFetcher
from ....models.domain import HarvestedImage, ManifestEntry
from ....utils.filesystem_sanitizer import sanitize_xml_id
from ....utils.media_types import get_media_type_from_filename
from .formats import EpubProfile
from .identifiers import DEFAULT_ASSET_STEM, IdentifierRegistry, asset_path_for

COVER_IMAGE_PROPERTIES = 'cover-image'


class AssetNamespace:
    """
    1回の生成処理で割り当てたアセットのファイル名とマニフェストエントリを保持します。
    ビルダーのスレッドからのみ更新されます。
    """

    def __init__(self, registry: IdentifierRegistry):
        self.registry = registry
        self.file_names: set[str] = set()
        self.entries: list[ManifestEntry] = []
        self._by_url: dict[str, ManifestEntry] = {}

    def lookup(self, url: str) -> ManifestEntry | None:
        return self._by_url.get(url)

    def allocate(
        self, url: str, mime_type: str, properties: str | None = None
    ) -> ManifestEntry:
        """URLに対して衝突しないファイル名と識別子を割り当て、エントリを記録します。"""
        file_name = asset_path_for(self.file_names, url)
        self.file_names.add(file_name)
        # images/foo.png -> images-foo
        id_source = PurePosixPath(file_name).with_suffix('').as_posix().replace('/', '-')
        xml_id = self.registry.claim(
            sanitize_xml_id(id_source, fallback=DEFAULT_ASSET_STEM), owner=url
        )
        entry = ManifestEntry(
            file_name=file_name,
            xml_id=xml_id,
            mime_type=mime_type,
            properties=properties,
        )
        self.entries.append(entry)
        self._by_url[url] = entry
        return entry


class ImageHarvester:
    """原稿中の画像参照を取得してパッケージに取り込み、参照先を書き換えるクラス。"""

    def __init__(
        self,
        fetcher: IResourceFetcher,
        namespace: AssetNamespace,
        profile: EpubProfile,
        max_workers: int = 4,
    ):
        self.fetcher = fetcher
        self.namespace = namespace
        self.profile = profile
        self.max_workers = max_workers

    def harvest(
        self,
        doc: BeautifulSoup,
        base_url: str | None = None,
        source_dir: Path | None = None,
    ) -> list[HarvestedImage]:
        """
        文書中の <img> を取り込み、新たにアーカイブへ書き込むべき画像を返します。
        取得に失敗した画像の参照は書き換えずに残します。
        """
        candidates: list[tuple[Tag, str]] = []
        for img in doc.find_all('img'):
            src = img.get('src')
            if not isinstance(src, str) or not src.strip():
                continue
            src = src.strip()
            if src.startswith('data:'):
                continue
            candidates.append((img, self._resolve_url(src, base_url, source_dir)))

        if not candidates:
            return []

        pending = []
        for _, url in candidates:
            if url in pending or self.namespace.lookup(url):
                continue
            if self._media_type_for(url) is None:
                continue
            pending.append(url)
        fetched = self._fetch_all(pending, source_dir)

        harvested: list[HarvestedImage] = []
        for img, url in candidates:
            entry = self.namespace.lookup(url)
            if entry is None:
                mime_type = self._media_type_for(url)
                if mime_type is None:
                    logger.bind(url=url, format=self.profile.format.value).warning(
                        'サポートされていない画像形式のため取り込みをスキップします。'
                    )
                    continue
                content = fetched.get(url)
                if content is None:
                    continue
                entry = self.namespace.allocate(url, mime_type)
                harvested.append(HarvestedImage(entry=entry, content=content))
            img['src'] = entry.file_name

        logger.bind(found=len(candidates), harvested=len(harvested)).debug(
            '画像の取り込みが完了しました。'
        )
        return harvested

    def harvest_cover(
        self, reference: str, base_dir: Path | None = None
    ) -> HarvestedImage | None:
        """
        表紙画像を取り込みます。取り込めなかった場合はNoneを返します。
        本文の画像より先に呼び出すことで、同じ画像を本文から参照しても表紙のエントリが共有されます。
        """
        mime_type = self._media_type_for(reference)
        if mime_type is None:
            logger.bind(cover=reference).warning(
                'サポートされていない表紙画像の形式です。表紙は設定されません。'
            )
            return None

        url = self._resolve_url(reference, None, base_dir or Path.cwd())
        content = self._fetch_all([url], base_dir).get(url)
        if content is None:
            return None

        properties = COVER_IMAGE_PROPERTIES if self.profile.supports_properties else None
        entry = self.namespace.allocate(url, mime_type, properties=properties)
        return HarvestedImage(entry=entry, content=content)

    def _resolve_url(
        self, src: str, base_url: str | None, source_dir: Path | None
    ) -> str:
        """
        画像の参照を、同一の画像が同一のキーになる絶対的な参照に変換します。
        ベースURLがなければ、相対パスは原稿のディレクトリを基準とした file: URL になります。
        """
        if base_url:
            return urljoin(base_url, src)
        parts = urlsplit(src)
        if parts.scheme or parts.netloc or source_dir is None:
            return src
        path = Path(url2pathname(parts.path))
        if not path.is_absolute():
            path = source_dir / path
        return path.resolve().as_uri()

    def _media_type_for(self, url: str) -> str | None:
        name = PurePosixPath(unquote(urlsplit(url).path)).name
        return get_media_type_from_filename(name, self.profile.image_media_types)

    def _fetch_all(self, urls: list[str], source_dir: Path | None) -> dict[str, bytes]:
        """複数のURLを並列に取得します。失敗したURLは結果に含まれません。"""
        results: dict[str, bytes] = {}
        if not urls:
            return results

        workers = min(self.max_workers, len(urls))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.fetcher.fetch, url, source_dir): url
                for url in urls
            }
            for future in concurrent.futures.as_completed(futures):
                url = futures[future]
                try:
                    results[url] = future.result()
                    logger.debug('画像を取得しました: {}', url)
                except Exception as e:
                    logger.warning('画像 ({}) の取得に失敗しました: {}', url, e)
        return results
