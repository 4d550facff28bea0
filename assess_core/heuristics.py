# assess_core/heuristics.py
from __future__ import annotations
import re
from typing import List

_CALL_RX     = re.compile(r'\b(console\.log|System\.out\.print\w*|printf|print|println|len|malloc|cout)\s*\(', re.I)
_KEYWORD_RX  = re.compile(r'\b(function|def\s+\w+\s*\(|lambda\s+\w*\s*:|#include|public\s+static|void\s+main|elif|foreach|typeof|null\s*pointer)', re.I)
_DECL_RX     = re.compile(r'\b(var|let|const|int|float|double|char|string|bool)\s+[A-Za-z_]\w*\s*(=|;|\[)', re.I)
_OPERATOR_RX = re.compile(r'(===|!==|=>|->|\+\+|--\s*;|&&|\|\||::|\w+\[\w*\]\s*=)')
_FENCE_RX    = re.compile(r'(```|`[^`\n]+`|<\/?\w+>)')
_LANG_RX     = re.compile(r'\b(javascript|typescript|python|java|c\+\+|c#|golang|ruby|php|sql|html|css|code\s+snippet|source\s+code|snippet|compiler|syntax|variable|array|loop|recursion)\b', re.I)


def code_signals(text: str) -> List[str]:
    """Names of the programming-content signals found in `text`."""

    if not isinstance(text, str): return []
    t = text.strip()
    if not t: return []

    hits: List[str] = []
    if _CALL_RX.search(t):     hits.append("call")
    if _KEYWORD_RX.search(t):  hits.append("keyword")
    if _DECL_RX.search(t):     hits.append("declaration")
    if _OPERATOR_RX.search(t): hits.append("operator")
    if _FENCE_RX.search(t):    hits.append("markup")
    if _LANG_RX.search(t):     hits.append("language")
    return hits


def looks_like_code(text: str) -> bool:
    return bool(code_signals(text))
