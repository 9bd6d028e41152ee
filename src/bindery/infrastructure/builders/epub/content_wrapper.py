# FILE: src/bindery/infrastructure/builders/epub/content_wrapper.py
from bs4 import BeautifulSoup, Declaration, Doctype, ProcessingInstruction, Tag
from jinja2 import Environment
from markupsafe import Markup

from ....models.domain import ResolvedDivision
from ....shared.constants import PACKAGE_PATHS
from ....shared.themes import Theme
from .constants import SCRIPT_CHARSET, SCRIPT_TYPE

HTML_PARSER = 'html.parser'


def parse_source(source: str) -> BeautifulSoup:
    """原稿のHTML/XHTMLを解析します。完全な文書と断片の両方を受け付けます。"""
    return BeautifulSoup(source, HTML_PARSER)


class ContentWrapper:
    """
    解析済みの原稿から、パッケージに格納する最終的なXHTML文書を生成するクラス。

    - 断片モード (body_only=True): <body> の中身をバージョンに応じたXHTMLの外枠に埋め込みます。
    - 完全文書モード (body_only=False): 原稿をそのまま出力します。

    どちらのモードでも、登録されたスクリプトは <body> の末尾に追加されます。
    """

    def __init__(
        self,
        template_env: Environment,
        theme: Theme,
        language: str,
        script_hrefs: list[str],
    ):
        self.template_env = template_env
        self.theme = theme
        self.language = language
        self.script_hrefs = script_hrefs

    def wrap(self, doc: BeautifulSoup, division: ResolvedDivision) -> bytes:
        if division.division.body_only:
            return self._wrap_fragment(doc, division.title)
        return self._serialize_document(doc)

    def _wrap_fragment(self, doc: BeautifulSoup, title: str) -> bytes:
        body = doc.body or self._collect_fragment(doc)
        self._append_scripts(doc, body)
        template = self.template_env.get_template(self.theme.templates.DIVISION)
        rendered = template.render(
            title=title,
            language=self.language,
            stylesheet_href=PACKAGE_PATHS.STYLESHEET_FILE,
            body=Markup(body.decode()),
        )
        return rendered.encode('utf-8')

    def _serialize_document(self, doc: BeautifulSoup) -> bytes:
        self._append_scripts(doc, doc.body or doc)
        return doc.decode().encode('utf-8')

    def _collect_fragment(self, doc: BeautifulSoup) -> Tag:
        """
        <body> を持たない断片を新しい <body> 要素にまとめます。
        <html> があればその子要素を対象とし、<head> は取り込みません。
        """
        body = doc.new_tag('body')
        container = doc.html or doc
        for node in list(container.contents):
            if isinstance(node, (Doctype, Declaration, ProcessingInstruction)):
                continue
            if isinstance(node, Tag) and node.name == 'head':
                continue
            body.append(node.extract())
        return body

    def _append_scripts(self, doc: BeautifulSoup, parent: Tag) -> None:
        for href in self.script_hrefs:
            script = doc.new_tag(
                'script',
                attrs={'src': href, 'type': SCRIPT_TYPE, 'charset': SCRIPT_CHARSET},
            )
            parent.append(script)
            parent.append('\n')
