"""
Text Codec
==========

The channel carries a small subset of HTML. Everything we send has
to be escaped, and clients collapse runs of whitespace, so spaces are
sent as non-breaking spaces and newlines as explicit line breaks.

    encode("a < b\\nok")  →  "a&nbsp;&lt;&nbsp;b<br />ok"
    decode(...)          →  "a < b\\nok"

decode() undoes the substitutions in exactly the reverse order, so
decode(encode(s)) == s for any s without a trailing newline.
Trailing newlines are dropped by encode() so replies never end in a
blank line.
"""

LINE_BREAK = "<br />"
SPACE = "&nbsp;"

# Order matters: '&' must be escaped first and unescaped last.
_ENTITIES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#39;"),
)


def encode(raw: str) -> str:
    """Escape raw text for the channel."""
    text = raw.rstrip("\n")
    for char, entity in _ENTITIES:
        text = text.replace(char, entity)
    text = text.replace(" ", SPACE)
    return text.replace("\n", LINE_BREAK)


def decode(safe: str) -> str:
    """Turn channel text back into raw text."""
    text = safe.replace(LINE_BREAK, "\n")
    text = text.replace(SPACE, " ")
    for char, entity in reversed(_ENTITIES):
        text = text.replace(entity, char)
    return text
