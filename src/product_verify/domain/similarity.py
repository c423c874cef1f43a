import re
import unicodedata
from typing import Iterable, Set

# Levenshtein is quadratic; longer inputs are compared on their prefix only
MAX_RATIO_CHARS = 200


def normalize_text(s: str) -> str:
    """Lower-case, NFC-normalize and reduce to letters, digits and single spaces."""
    nfc = unicodedata.normalize("NFC", (s or "").replace("\u00A0", " "))
    kept = [ch if (ch.isalnum() or ch.isspace()) else " " for ch in nfc.lower()]
    return re.sub(r"\s+", " ", "".join(kept)).strip()


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    la, lb = len(a), len(b)
    if la > lb:
        a, b = b, a
        la, lb = lb, la
    prev = list(range(la + 1))
    for j in range(1, lb + 1):
        cur = [j] + [0] * la
        bj = b[j - 1]
        for i in range(1, la + 1):
            cost = 0 if a[i - 1] == bj else 1
            cur[i] = min(cur[i - 1] + 1, prev[i] + 1, prev[i - 1] + cost)
        prev = cur
    return prev[la]


def similarity_ratio(a: str, b: str) -> float:
    """1.0 for identical strings, 0.0 for completely different ones."""
    if not a and not b:
        return 1.0
    longest = max(len(a), len(b))
    return 1.0 - (levenshtein(a, b) / longest)


def _tokens(s: str) -> Set[str]:
    return {t for t in s.split() if len(t) > 1}


def token_overlap(a: str, b: str) -> float:
    """Share of a's tokens that also occur in b."""
    ta = _tokens(a)
    if not ta:
        return 0.0
    return len(ta & _tokens(b)) / len(ta)


def best_similarity(needle: str, candidates: Iterable[str]) -> float:
    """Highest combined score of `needle` against any candidate title.

    The score is the larger of the whole-string ratio and the token overlap,
    both on normalized text.
    """
    n = normalize_text(needle)
    if not n:
        return 0.0
    best = 0.0
    for cand in candidates:
        c = normalize_text(cand)
        if not c:
            continue
        ratio = similarity_ratio(n[:MAX_RATIO_CHARS], c[:MAX_RATIO_CHARS])
        score = max(ratio, token_overlap(n, c))
        if score > best:
            best = score
    return best


def best_token_overlap(needle: str, candidates: Iterable[str]) -> float:
    """Highest token overlap of `needle` against any candidate, without edit distance."""
    n = normalize_text(needle)
    if not n:
        return 0.0
    return max((token_overlap(n, normalize_text(cand)) for cand in candidates), default=0.0)
