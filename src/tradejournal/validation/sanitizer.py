"""Markup stripping for free-text trade fields.

Text is parsed with BeautifulSoup's html.parser and reduced to its text nodes.
Elements whose content is code rather than prose are dropped entirely.
Decoding an entity can reveal new markup ("&lt;b&gt;" -> "<b>"), so parsing is
repeated until the output stops changing; each pass never grows the text.
"""

from bs4 import BeautifulSoup

_DROPPED_ELEMENTS = ("script", "style", "template", "noscript", "iframe", "object")


def _strip_once(text: str) -> str:
    soup = BeautifulSoup(text, "html.parser")
    for element in soup.find_all(_DROPPED_ELEMENTS):
        element.decompose()
    return soup.get_text()


def sanitize(text: str | None) -> str:
    """Return text with all tags and attributes removed.

    Never raises. None or empty input yields "". Idempotent.
    """
    if not text:
        return ""
    current = str(text)
    while True:
        stripped = _strip_once(current)
        if stripped == current or len(stripped) >= len(current):
            return stripped
        current = stripped
