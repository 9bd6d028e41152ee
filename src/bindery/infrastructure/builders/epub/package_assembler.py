# FILE: src/bindery/infrastructure/builders/epub/package_assembler.py
import os
import stat
import tempfile
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path, PurePosixPath

from loguru import logger

from .constants import CONTAINER_XML_PATH, MIMETYPE_CONTENT, MIMETYPE_FILE_NAME

CONTAINER_XML_RESOURCE_PATH = Path(__file__).parent / 'assets' / 'container.xml'


class EpubArchiveWriter:
    """
    開いているZIPコンテナへの書き込みを担当するクラス。
    サブディレクトリのエントリは、その配下に最初に書き込む時点で作成します。
    """

    def __init__(self, zip_file: zipfile.ZipFile):
        self.zip_file = zip_file
        self._directories: set[str] = set()
        self._names: set[str] = set()

    def write_mimetype(self) -> None:
        """mimetype を先頭エントリとして非圧縮で書き込みます。"""
        if self._names:
            raise RuntimeError('mimetype は最初のエントリでなければなりません。')
        self.zip_file.writestr(
            MIMETYPE_FILE_NAME, MIMETYPE_CONTENT, compress_type=zipfile.ZIP_STORED
        )
        self._names.add(MIMETYPE_FILE_NAME)

    def write_container(self) -> None:
        try:
            container_content = CONTAINER_XML_RESOURCE_PATH.read_bytes()
        except OSError as e:
            logger.error(
                f'コンテナリソースの読み込みに失敗: {CONTAINER_XML_RESOURCE_PATH}. {e}'
            )
            raise
        self.write(CONTAINER_XML_PATH, container_content)

    def write(self, name: str, content: bytes) -> None:
        """エントリを圧縮して書き込みます。"""
        parent = PurePosixPath(name).parent
        if parent != PurePosixPath('.'):
            self.ensure_directory(parent.as_posix())
        self.zip_file.writestr(name, content, compress_type=zipfile.ZIP_DEFLATED)
        self._names.add(name)

    def ensure_directory(self, dirname: str) -> None:
        if dirname in self._directories:
            return
        self.zip_file.mkdir(dirname)
        self._directories.add(dirname)


class EpubPackageAssembler:
    """EPUBコンテナを一時ファイルに書き込み、完成後に出力先へ置き換えるクラス。"""

    @contextmanager
    def open(self, output_path: Path) -> Iterator[EpubArchiveWriter]:
        """
        一時ファイル上にZIPコンテナを開き、mimetype を書き込んだ状態で返します。
        ブロックが正常に終了した場合のみ出力先を置き換え、失敗した場合は一時ファイルを削除します。
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.exists():
            logger.bind(output_path=str(output_path)).warning(
                '出力ファイルは既に存在するため上書きします。'
            )

        fd, tmp_name = tempfile.mkstemp(
            prefix=f'.{output_path.name}.', suffix='.part', dir=output_path.parent
        )
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            with zipfile.ZipFile(tmp_path, 'w') as zip_file:
                writer = EpubArchiveWriter(zip_file)
                writer.write_mimetype()
                yield writer
            os.chmod(tmp_path, _output_mode(output_path))
            os.replace(tmp_path, output_path)
            logger.debug(f'EPUB を生成しました: {output_path}')
        except BaseException:
            self._cleanup_failed_build(tmp_path)
            raise

    def _cleanup_failed_build(self, path: Path) -> None:
        """ビルド失敗時に、不完全な一時ファイルを削除します。"""
        try:
            path.unlink(missing_ok=True)
            logger.bind(file_path=str(path)).debug('不完全な一時ファイルを削除しました。')
        except OSError as e:
            logger.bind(file_path=str(path), error=str(e)).error(
                '一時ファイルの削除に失敗しました。'
            )


def _output_mode(output_path: Path) -> int:
    """置き換える既存ファイルがあればその権限を、なければ umask を反映した権限を返します。"""
    try:
        return stat.S_IMODE(output_path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask
