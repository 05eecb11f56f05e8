"""Tests for cache key derivation."""

from __future__ import annotations

from purpleiq.cache import make_cache_key, normalize_message
from purpleiq.cache.keys import context_fingerprint, project_of


def test_normalize_message() -> None:
    assert normalize_message("  How do I   LOG in?\n") == "how do i log in?"


def test_case_and_whitespace_variants_share_a_key() -> None:
    a = make_cache_key("What is the login flow?", "ctx", "openai:gpt-4o-mini", "acme")
    b = make_cache_key("  what IS the   login flow? ", "ctx", "openai:gpt-4o-mini", "acme")
    assert a == b


def test_key_components_distinguish_requests() -> None:
    base = make_cache_key("q", "ctx", "openai:gpt-4o-mini", "acme")
    assert base != make_cache_key("q", "other ctx", "openai:gpt-4o-mini", "acme")
    assert base != make_cache_key("q", "ctx", "gemini:gemini-2.5-flash", "acme")
    assert base != make_cache_key("q", "ctx", "openai:gpt-4o-mini", "globex")


def test_only_context_prefix_counts() -> None:
    prefix = "a" * 500
    assert context_fingerprint(prefix + "tail one") == context_fingerprint(prefix + "tail two")
    assert make_cache_key("q", "abcd-1", "m", "p", context_chars=4) == make_cache_key(
        "q", "abcd-2", "m", "p", context_chars=4
    )


def test_fingerprint_is_16_hex_chars() -> None:
    fp = context_fingerprint("")
    assert len(fp) == 16
    int(fp, 16)


def test_project_of() -> None:
    assert project_of(make_cache_key("a|b", "ctx", "m", "acme")) == "acme"
