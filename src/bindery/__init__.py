# FILE: src/bindery/__init__.py
"""HTML/XHTML原稿からEPUB2/EPUB3の電子書籍を生成するライブラリです。"""

from .app import Application
from .authoring import BookBuilder, define_book
from .infrastructure.builders.epub.builder import EpubBuilder
from .infrastructure.repositories.book_file import TomlBookRepository
from .models.book import Book, Division, DivisionOptions, MetadataEntry
from .shared.enums import DivisionType, OutputFormat
from .shared.exceptions import (
    BinderyError,
    BuildError,
    ConfigurationError,
    FetchError,
    ResourceError,
)
from .shared.settings import Settings

__all__ = [
    'Application',
    'BinderyError',
    'Book',
    'BookBuilder',
    'BuildError',
    'ConfigurationError',
    'Division',
    'DivisionOptions',
    'DivisionType',
    'EpubBuilder',
    'FetchError',
    'MetadataEntry',
    'OutputFormat',
    'ResourceError',
    'Settings',
    'TomlBookRepository',
    'define_book',
]
