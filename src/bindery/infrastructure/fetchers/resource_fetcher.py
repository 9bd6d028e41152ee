# FILE: src/bindery/infrastructure/fetchers/resource_fetcher.py
import time
from pathlib import Path
from typing import Callable
from urllib.parse import urlsplit
from urllib.request import url2pathname

import requests
from loguru import logger
from pybreaker import CircuitBreaker, CircuitBreakerError
from requests.exceptions import RequestException

from ...shared.exceptions import FetchError
from ...shared.settings import FetcherSettings

REMOTE_SCHEMES = ('http', 'https')


def _is_client_error(exception: BaseException) -> bool:
    """4xx系のエラーはサービス障害とみなさず、サーキットブレーカーの計数から除外します。"""
    return isinstance(exception, FetchError) and exception.is_client_error


class ResourceFetcher:
    """
    画像などのリソースをURLまたはローカルパスから取得するクラス。
    リモート取得にはリトライとサーキットブレーカーを適用します。
    """

    def __init__(
        self,
        settings: FetcherSettings,
        session: requests.Session | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.setdefault('User-Agent', settings.user_agent)
        self.breaker = breaker or CircuitBreaker(
            fail_max=settings.circuit_breaker.fail_max,
            reset_timeout=settings.circuit_breaker.reset_timeout,
            exclude=[_is_client_error],
        )

    def fetch(self, url: str, base_dir: Path | None = None) -> bytes:
        """
        指定されたURLの内容をバイト列で返します。

        スキームを持たない参照と file: URL はローカルファイルとして読み込み、
        相対パスは `base_dir` を基準に解決します。

        Raises:
            FetchError: 取得に失敗した場合。
        """
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme in REMOTE_SCHEMES:
            return self._safe_remote_fetch(url)
        if not scheme and parts.netloc:
            # プロトコル相対URL (//example.com/foo.png)
            return self._safe_remote_fetch(f'https:{url}')
        if scheme == 'file':
            return self._read_local(Path(url2pathname(parts.path)), url)
        if not scheme:
            path = Path(url2pathname(parts.path))
            if not path.is_absolute() and base_dir is not None:
                path = base_dir / path
            return self._read_local(path, url)
        raise FetchError(f'サポートされていないURLスキームです: {scheme}', url=url)

    def _read_local(self, path: Path, url: str) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise FetchError(f'ローカルファイルを読み込めません: {e}', url=url) from e

    def _get(self, url: str) -> bytes:
        response = self.session.get(url, timeout=self.settings.timeout)
        response.raise_for_status()
        return response.content

    def _execute_with_retries(self, func: Callable[[str], bytes], url: str) -> bytes:
        """取得処理をリトライ機構付きで実行します。"""
        last_exception: Exception | None = None
        retries = self.settings.retries
        for attempt in range(1, retries + 1):
            try:
                return func(url)
            except RequestException as e:
                last_exception = e
                status_code = getattr(getattr(e, 'response', None), 'status_code', None)

                log = logger.bind(
                    url=url,
                    attempt=attempt,
                    total_retries=retries,
                    error=str(e),
                    status_code=status_code or 'N/A',
                )

                if status_code and 400 <= status_code < 500:
                    raise FetchError(
                        f'HTTPクライアントエラー (HTTP {status_code})',
                        url=url,
                        status_code=status_code,
                    ) from e

                log.debug('リソース取得中にエラーが発生しました。')
                if attempt < retries:
                    time.sleep(self.settings.retry_delay * attempt)  # Backoff delay

        raise FetchError(
            'リソース取得がリトライ上限に達しました', url=url
        ) from last_exception

    def _safe_remote_fetch(self, url: str) -> bytes:
        """
        リモート取得をサーキットブレーカーとリトライ機構付きで安全に実行します。
        サーキットが開いている場合、この関数は即座に失敗します。
        """
        try:
            return self.breaker.call(self._execute_with_retries, self._get, url)
        except CircuitBreakerError as e:
            raise FetchError(
                'サーキットブレーカー作動中のため取得を中止しました', url=url
            ) from e
