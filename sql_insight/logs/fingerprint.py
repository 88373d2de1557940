"""
SQL fingerprinting - canonical grouping keys for slow statements.

Normalization, applied in this order:
1. One left-to-right scan replaces quoted literals ('...' and "...", with
   '' and backslash escapes) by ? and removes comments: /* ... */ blocks,
   "-- " line comments and MySQL "#" line comments. Comment markers inside
   literals and quotes inside comments are not misread.
2. Hex (0x1F) and numeric literals (42, 1.5, 2e10) -> ? ; digits that are
   part of an identifier (t1, col_2) are kept
3. Whitespace runs collapse to one space
4. Everything is lower-cased; spacing around parentheses and commas is
   normalized ("f( a,b )" -> "f(a, b)")
5. A unary minus folds into its literal (id = -5 and id = 5 collide);
   binary minus (a - 5, ?-?) is kept
6. IN lists of placeholders collapse: in (?, ?, ?) -> in (?+)
7. One trailing ';' is stripped

"--" only starts a comment when followed by whitespace or the end of the
line, as in MySQL, so "x--5" stays an expression.

The fingerprint is only a grouping key; reports keep a real sample
statement next to it.
"""

import re


PLACEHOLDER = "?"

_LITERAL_OR_COMMENT = re.compile(
    r"(?P<quoted>'(?:[^'\\]|\\.|'')*'"
    r'|"(?:[^"\\]|\\.|"")*")'
    r"|(?P<comment>/\*.*?\*/"
    r"|--(?:[ \t][^\r\n]*)?(?=[\r\n]|$)"
    r"|#[^\r\n]*)",
    re.DOTALL,
)
_HEX = re.compile(r"(?<![\w$])0x[0-9a-fA-F]+(?![\w$])")
_NUMBER = re.compile(r"(?<![\w$.])(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?(?![\w$])")
_WHITESPACE = re.compile(r"\s+")
_UNARY_MINUS = re.compile(
    r"(^|[=<>(,+\-*/%]|\b(?:select|where|and|or|not|by|when|then|else|between|"
    r"limit|offset|values|set|like|is|return)\b)( ?)- ?\?(?![\w$])"
)
_IN_LIST = re.compile(r"\bin ?\((?:\?, )*\?\)")


def _replace_literal_or_comment(match: "re.Match") -> str:
    return PLACEHOLDER if match.group("quoted") is not None else " "


def fingerprint(sql: str) -> str:
    """Canonical form of `sql`; statements differing only in literals collide."""
    text = _LITERAL_OR_COMMENT.sub(_replace_literal_or_comment, sql)
    text = _HEX.sub(PLACEHOLDER, text)
    text = _NUMBER.sub(PLACEHOLDER, text)
    text = _WHITESPACE.sub(" ", text).strip().lower()
    text = re.sub(r"\(\s*", "(", text)
    text = re.sub(r"\s*\)", ")", text)
    text = re.sub(r"\s*,\s*", ", ", text)
    text = _UNARY_MINUS.sub(r"\1\2?", text)
    text = _IN_LIST.sub("in (?+)", text)
    if text.endswith(";"):
        text = text[:-1].rstrip()
    return text
