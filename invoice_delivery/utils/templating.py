"""Mustache message templates, rendered with chevron.

Supported tags:

- ``{{name}}``: value, HTML-escaped when rendering HTML
- ``{{{name}}}`` / ``{{&name}}``: raw value
- ``{{#name}}...{{/name}}``: rendered when ``name`` is set (once per item for lists)
- ``{{^name}}...{{/name}}``: rendered when ``name`` is empty

Names are plain identifiers looked up in a flat mapping. Dotted names, partials and delimiter
changes are rejected when the template is built, so a template can only print data it was given.
"""

import html
import re
from typing import Any, Mapping

import chevron
from chevron.tokenizer import ChevronError, tokenize

from invoice_delivery.core.errors import ConfigurationError

_NAME = re.compile(r"^(\w+|\.)$")
_NAMED_TAGS = {"variable", "no escape", "section", "inverted section", "end"}


class Template:
    """A tokenized template that can be rendered many times."""

    def __init__(self, source: str):
        self.source = source
        try:
            self._tokens = list(tokenize(source))
        except (ChevronError, IndexError) as e:
            raise ConfigurationError(
                f"Template is malformed: {' '.join(str(e).split())}", code="invalid_template"
            ) from e

        for tag, key in self._tokens:
            if tag == "literal":
                continue
            if tag not in _NAMED_TAGS or not _NAME.match(key):
                raise ConfigurationError(
                    f"Template tag '{key}' ({tag}) is not supported", code="invalid_template"
                )

        # Plain-text rendering prints every value as-is
        self._text_tokens = [
            ("no escape", key) if tag == "variable" else (tag, key) for tag, key in self._tokens
        ]

    def render(self, context: Mapping[str, Any], escape_html: bool = False) -> str:
        tokens = self._tokens if escape_html else self._text_tokens
        return chevron.render(tokens, dict(context))


def render_template(source: str, context: Mapping[str, Any], escape_html: bool = False) -> str:
    """Parse and render ``source`` in one step."""
    return Template(source).render(context, escape_html=escape_html)


def html_to_text(markup: str) -> str:
    """Crude plain-text rendition of an HTML email body."""
    text = re.sub(r"<(style|script)[^>]*>.*?</\1>", "", markup, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()
