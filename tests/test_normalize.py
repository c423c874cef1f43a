import os
import sys

# Ensure the repository's src/ is importable
sys.path.insert(0, os.path.abspath("src"))

from product_verify.domain.normalize import (
    build_search_text,
    extract_batch_numbers,
    first_search_token,
    normalize_batch_number,
    sanitize_input,
)
from product_verify.domain.similarity import best_similarity, levenshtein, similarity_ratio


def test_sanitize_strips_unsafe_characters_and_collapses_whitespace():
    assert sanitize_input("  Panadol <b>Extra</b>;   500mg  ") == "Panadol bExtra/b 500mg"
    assert sanitize_input("Tom's  \n  \"syrup\" & co") == "Toms syrup co"


def test_sanitize_caps_length():
    assert len(sanitize_input("a" * 5000)) == 1000


def test_search_text_is_lowercased_and_trimmed():
    text = build_search_text("Amoxicillin 500mg", "Capsules", None, "")
    assert text == "amoxicillin 500mg capsules"
    assert first_search_token(text) == "amoxicillin"
    assert first_search_token("   ") is None


def test_normalize_batch_number():
    assert normalize_batch_number("  amx 2301 ") == "AMX 2301"
    assert normalize_batch_number("   ") is None
    assert normalize_batch_number(None) is None


def test_extract_batch_numbers_from_alert_text():
    content = (
        "NAFDAC alerts the public about counterfeit Amoxicillin capsules. "
        "Batch No: AMX2301, AMX2302 and AMX2303. Lot number INS9001 has expired."
    )
    assert extract_batch_numbers(content) == ["AMX2301", "AMX2302", "AMX2303", "INS9001"]


def test_extract_batch_numbers_ignores_plain_words():
    assert extract_batch_numbers("This batch of syrup was sold in Lagos markets.") == []
    assert extract_batch_numbers(None) == []


def test_levenshtein_and_ratio():
    assert levenshtein("famila", "familia") == 1
    assert similarity_ratio("abc", "abc") == 1.0
    assert similarity_ratio("abc", "xyz") == 0.0


def test_best_similarity_uses_token_overlap():
    titles = ["Counterfeit Amoxicillin 500mg Capsules", "Recall of Paracetamol Syrup"]
    assert best_similarity("Amoxicillin 500mg", titles) == 1.0
    assert best_similarity("Vitamin C tablets", titles) < 0.5
