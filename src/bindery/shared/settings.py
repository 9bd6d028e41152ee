# FILE: src/bindery/shared/settings.py

import tomllib
from pathlib import Path
from typing import Any, cast

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .constants import ENV_KEYS
from .exceptions import SettingsError


# --- TOMLファイル読み込みロジック ---
def load_toml_config(toml_file: Path) -> dict[str, Any]:
    """指定されたTOMLファイルを読み込みます。"""
    if not toml_file.is_file():
        return {}
    try:
        with toml_file.open('rb') as f:
            return tomllib.load(f)
    except Exception as e:
        raise SettingsError(
            f"設定ファイル '{toml_file}' の解析に失敗しました: {e}"
        ) from e


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """ユーザー指定のTOML設定ファイルを読み込むためのカスタムソース。"""

    def __init__(self, settings_cls: type[BaseSettings], config_file: Path | None):
        super().__init__(settings_cls)
        self.config_file = config_file
        self._toml_config: dict[str, Any] = (
            load_toml_config(self.config_file) if self.config_file else {}
        )

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        """このカスタムソースはフィールドごとの値取得をサポートしないため、__call__に処理を委ねます。"""
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """設定ファイル全体を辞書として一度に返します。"""
        return self._toml_config


class PyProjectTomlSource(PydanticBaseSettingsSource):
    """pyproject.tomlから[tool.bindery]セクションを読み込むソース。"""

    def __init__(self, settings_cls: type[BaseSettings]):
        super().__init__(settings_cls)
        self._config = self._load_pyproject_toml()

    def _load_pyproject_toml(self) -> dict[str, Any]:
        pyproject_path = Path.cwd() / 'pyproject.toml'
        config = load_toml_config(pyproject_path)
        return cast(dict[str, Any], config.get('tool', {}).get('bindery', {}))

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._config


# --- 設定モデル定義 ---


class CircuitBreakerSettings(BaseModel):
    """サーキットブレーカーに関する設定。"""

    fail_max: int = Field(
        default=5,
        description='何回連続で失敗したらサーキットをOpen状態にするか。',
    )
    reset_timeout: int = Field(
        default=60,
        description='サーキットがOpenしてからHalf-Open状態に移行するまでの秒数。',
    )


class FetcherSettings(BaseModel):
    """画像取得処理に関する設定。"""

    timeout: float = Field(
        default=30.0, description='1リクエストあたりのタイムアウト(秒)。'
    )
    retries: int = Field(
        default=3,
        description='リクエストが失敗した場合のリトライ回数。',
    )
    retry_delay: float = Field(
        default=1.0, description='リトライ間の基本待機時間(秒)。'
    )
    max_workers: int = Field(
        default=4,
        description='画像を並列取得する際の最大ワーカー数。',
    )
    user_agent: str = Field(
        default='bindery/0.3 (+https://github.com/glv/bindery)',
        description='HTTPリクエストに使用するユーザーエージェント。',
    )
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings
    )

    @field_validator('retries', 'max_workers')
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError('1以上の値を指定してください。')
        return value


class BuilderSettings(BaseModel):
    """EPUB生成処理に関する設定。"""

    output_directory: Path = Field(
        default=Path('.'),
        description='生成されたEPUBファイルの保存先ディレクトリ。',
    )
    default_language: str = Field(
        default='en',
        description='書籍に言語が指定されていない場合に使用する言語コード。',
    )
    strict_identifiers: bool = Field(
        default=False,
        description='識別子が重複した場合に連番を付与せずエラーとするかどうか。',
    )


class Settings(BaseSettings):
    """
    アプリケーションの階層的設定管理クラス。
    以下の優先順位で設定を読み込みます:
    1. Pythonコードからの直接初期化
    2. --config で指定されたカスタムTOMLファイル
    3. 環境変数 (例: BINDERY_FETCHER__TIMEOUT=10)
    4. .env ファイル
    5. pyproject.toml内の [tool.bindery] セクション
    6. モデルで定義されたデフォルト値
    """

    builder: BuilderSettings = Field(default_factory=BuilderSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    log_level: str = 'INFO'

    def __init__(self, **values: object):
        # '_config_file' は settings_customise_sources で取り出され、
        # フィールドとしては検証されない
        try:
            super().__init__(**values)  # type: ignore [arg-type]
        except (ValidationError, ValueError) as e:
            raise SettingsError(f'設定の検証に失敗しました:\n{e}') from e

    model_config = SettingsConfigDict(
        env_nested_delimiter=ENV_KEYS.DELIMITER,
        env_prefix=ENV_KEYS.PREFIX,
        env_file='.env',
        env_file_encoding='utf-8',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        init_data = dict(getattr(init_settings, 'init_kwargs', {}))
        config_file_path = init_data.pop('_config_file', None)
        if config_file_path and not isinstance(config_file_path, Path):
            config_file_path = Path(cast(str, config_file_path))

        return (
            InitSettingsSource(settings_cls, init_kwargs=init_data),
            TomlConfigSettingsSource(settings_cls, config_file_path),
            env_settings,
            dotenv_settings,
            PyProjectTomlSource(settings_cls),
        )
