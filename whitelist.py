# whitelist.py
"""
このファイルは Vulture が検出した「デッドコード」の誤検知を
抑制するためのホワイトリストです。

Pydanticモデルのフィールド(Jinja2テンプレートからのみ参照されるもの)、
Typerのコマンド、ABCの抽象メソッド実装など、Vulture が静的解析で
「未使用」と判断してしまう項目をここで定義します。
"""

# --- Pydanticモデルのフィールド (domain.py, テンプレートから参照) ---
model_config
media_type
properties
linear
css_class
play_order

# --- 設定ソース (settings.py) ---
settings_customise_sources
get_field_value
validate_positive

# --- 未使用と報告されたメソッド ---
# (ABCの実装や、Enumのフック)
get_builder_name
_missing_

# --- Typerのコールバックとコマンド (cli.py) ---
main_callback
build
check
run_app
