"""
EPUBファイル構造に関連する定数を集約します。
"""

from ....shared.constants import PACKAGE_PATHS

# EPUBコンテナの必須ファイル
MIMETYPE_FILE_NAME = 'mimetype'
# mimetype はASCIIで、非圧縮かつアーカイブの先頭エントリでなければならない
MIMETYPE_CONTENT = b'application/epub+zip'

CONTAINER_XML_PATH = f'{PACKAGE_PATHS.META_INF_DIR}/container.xml'

# 文書の外枠に差し込むスクリプトタグの属性
SCRIPT_TYPE = 'text/javascript'
SCRIPT_CHARSET = 'utf-8'
