# FILE: src/bindery/entrypoints/cli.py
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from loguru import logger

from ..app import Application
from ..infrastructure.builders.epub.builder import EpubBuilder
from ..infrastructure.repositories.book_file import TomlBookRepository
from ..shared.exceptions import BinderyError, SettingsError
from ..shared.settings import Settings
from ..utils.logging import setup_logging

app = typer.Typer(
    help='書籍ファイル (book.toml) に記述されたHTML/XHTML原稿から、EPUB2/EPUB3の電子書籍を生成するコマンドラインツールです。',
    rich_markup_mode='markdown',
)


def _initialize_settings(config_file: Path | None, log_level: str) -> Settings:
    """設定オブジェクトを初期化するヘルパー関数。"""
    try:
        return Settings(_config_file=config_file, log_level=log_level)
    except SettingsError as e:
        logger.bind(error=str(e)).error('❌ 設定エラーが発生しました。')
        raise typer.Exit(code=1) from e


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            '-v',
            '--verbose',
            help='詳細なデバッグログを有効にします。',
            show_default=False,
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            '-c',
            '--config',
            help='カスタム設定TOMLファイルへのパス。',
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    log_file: Annotated[
        bool,
        typer.Option(
            '--log-file',
            help='ログをJSON形式でファイルに出力します。',
            show_default=False,
        ),
    ] = False,
) -> None:
    """
    Bindery: HTML/XHTML to EPUB packager
    """
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level, serialize_to_file=log_file)

    settings = _initialize_settings(config, log_level)
    ctx.obj = Application(settings=settings, builder=EpubBuilder(settings=settings))


def _fail(error: BinderyError) -> NoReturn:
    logger.bind(error=str(error)).error('❌ 処理中にエラーが発生しました。')
    raise typer.Exit(code=1) from error


BookFileArgument = Annotated[
    Path,
    typer.Argument(
        help='書籍ファイル (book.toml) へのパス。',
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        resolve_path=True,
        metavar='BOOK_FILE',
    ),
]


@app.command()
def build(
    ctx: typer.Context,
    book_file: BookFileArgument,
    formats: Annotated[
        list[str] | None,
        typer.Option(
            '-f',
            '--format',
            help="出力形式 ('epub', 'epub2', 'epub3')。複数回指定できます。",
        ),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option(
            '-o',
            '--output-dir',
            help='EPUBファイルの出力先ディレクトリ。',
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ] = None,
) -> None:
    """書籍ファイルを読み込み、EPUBファイルを生成します。"""
    application: Application = ctx.obj
    try:
        book = TomlBookRepository().load(book_file)
        paths = application.generate(book, formats=formats, output_dir=output_dir)
    except BinderyError as e:
        _fail(e)
    for path in paths:
        logger.bind(output_path=str(path)).info('生成しました。')
    logger.success('✅ すべての処理が完了しました。')


@app.command()
def check(ctx: typer.Context, book_file: BookFileArgument) -> None:
    """書籍ファイルを検証し、生成されるディビジョンの一覧を表示します。"""
    application: Application = ctx.obj
    try:
        book = TomlBookRepository().load(book_file)
        entries = application.check(book)
    except BinderyError as e:
        _fail(e)
    for entry in entries:
        typer.echo(entry)
    logger.success('✅ 書籍定義に問題はありません。')


@logger.catch(exclude=BinderyError)
def run_app() -> None:
    """
    アプリケーション全体を@logger.catchでラップし、
    制御下の例外は個別処理、それ以外をLoguruに記録させるためのラッパー関数。
    """
    app()
