"""Unit tests for URL, alias and lookup-key validation."""

import pytest

from shortlink.errors import ValidationError
from shortlink.validation import (
    is_suspicious_url,
    is_valid_alias,
    is_valid_lookup_key,
    is_valid_url,
    sanitize_url,
    validate_alias,
    validate_original_url,
)


class TestSanitize:
    def test_strips_whitespace_and_trailing_slashes(self):
        assert sanitize_url("  https://example.com/path///  ") == "https://example.com/path"

    def test_leaves_inner_slashes(self):
        assert sanitize_url("https://example.com/a/b") == "https://example.com/a/b"


class TestOriginalURL:
    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com",
            "http://example.com/path?q=1&r=2",
            "https://sub.example.co.uk/a/b#frag",
            "http://localhost:8080/health",
            "https://example.com/a path",
            "http://my_host.example.com/",
            "https://example.com/search?q=two words&lang=en",
            "https://example.com/caf\u00e9/men\u00fc",
            "https://example.com/already%20escaped",
        ],
    )
    def test_accepts_http_and_https(self, url):
        assert is_valid_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            "not-a-url",
            "ftp://example.com/file",
            "example.com",
            "https://",
            "mailto:someone@example.com",
            "",
            "http://example.com:notaport/",
        ],
    )
    def test_rejects_non_http_urls(self, url):
        assert not is_valid_url(url)

    def test_validate_returns_sanitized_url(self):
        assert validate_original_url("https://example.com/path/") == "https://example.com/path"

    def test_validate_keeps_url_unescaped(self):
        assert validate_original_url("https://example.com/a path/") == "https://example.com/a path"

    def test_validate_rejects_empty(self):
        with pytest.raises(ValidationError, match="required"):
            validate_original_url("   ")

    def test_validate_rejects_bad_scheme(self):
        with pytest.raises(ValidationError, match="Invalid URL format"):
            validate_original_url("ftp://example.com")

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/?next=javascript:alert(1)",
            "https://example.com/?x=JavaScript:alert(1)",
            "https://example.com/data:text/html",
            "https://example.com/?r=VBScript:msg",
            "https://example.com/?f=FILE:/etc/passwd",
            "https://example.com/?a=about:blank",
        ],
    )
    def test_validate_rejects_suspicious_substrings(self, url):
        assert is_suspicious_url(url)
        with pytest.raises(ValidationError, match="suspicious"):
            validate_original_url(url)

    def test_plain_url_is_not_suspicious(self):
        assert not is_suspicious_url("https://example.com/about/data")


class TestAlias:
    @pytest.mark.parametrize("alias", ["abc", "my-link", "my_link", "A1-b2_C3", "x" * 50])
    def test_accepts_valid_aliases(self, alias):
        assert is_valid_alias(alias)
        assert validate_alias(alias) == alias

    @pytest.mark.parametrize("alias", ["ab", "my link", "x" * 51, "bad!", "slash/alias", "", None])
    def test_rejects_invalid_aliases(self, alias):
        assert not is_valid_alias(alias)

    def test_validate_alias_raises(self):
        with pytest.raises(ValidationError, match="Invalid custom alias"):
            validate_alias("ab")


class TestLookupKey:
    @pytest.mark.parametrize("key", ["abc1234", "my-link", "abc"])
    def test_accepts_codes_and_aliases(self, key):
        assert is_valid_lookup_key(key)

    @pytest.mark.parametrize("key", ["ab", "has space", "semi;colon", "x" * 51, "favicon.ico"])
    def test_rejects_malformed_keys(self, key):
        assert not is_valid_lookup_key(key)
