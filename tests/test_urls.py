#!/usr/bin/env python3
"""
Tests for crawl scoping: link filtering, registrable domains and root
URL validation.
"""

import pytest

from pipelines.urls import (
    InvalidRootURL,
    filter_links,
    normalize_link,
    registrable_domain,
    same_registrable_domain,
    validate_root_url,
)

ROOT = "https://www.example.com/"


class TestLinkFiltering:

    def test_non_page_links_dropped(self):
        hrefs = [
            "mailto:team@example.com",
            "tel:+15551234",
            "javascript:void(0)",
            "#section",
            "ftp://example.com/file",
            "/about",
        ]
        assert filter_links(hrefs, ROOT, ROOT) == ["https://www.example.com/about"]

    def test_foreign_domains_dropped_and_subdomains_kept(self):
        hrefs = [
            "https://blog.example.com/post",
            "https://example.org/elsewhere",
            "https://notexample.com/",
            "https://docs.example.com/guide",
        ]
        assert filter_links(hrefs, ROOT, ROOT) == [
            "https://blog.example.com/post",
            "https://docs.example.com/guide",
        ]

    def test_relative_links_resolve_against_page_url(self):
        base = "https://www.example.com/blog/2024/"
        assert filter_links(["next", "../archive"], base, ROOT) == [
            "https://www.example.com/blog/2024/next",
            "https://www.example.com/blog/archive",
        ]

    def test_fragments_stripped_and_duplicates_removed(self):
        hrefs = ["/a#top", "/a", "/b#x", "/a#bottom"]
        assert filter_links(hrefs, ROOT, ROOT) == [
            "https://www.example.com/a",
            "https://www.example.com/b",
        ]

    def test_limit_applies_after_filtering(self):
        hrefs = ["mailto:x@example.com"] + [f"/page{i}" for i in range(50)]
        links = filter_links(hrefs, ROOT, ROOT, limit=20)
        assert len(links) == 20
        assert links[0] == "https://www.example.com/page0"

    def test_normalize_rejects_empty(self):
        assert normalize_link("", ROOT) is None
        assert normalize_link("   ", ROOT) is None

    def test_link_to_bare_host_matches_root_form(self):
        assert normalize_link("https://www.example.com", ROOT) == ROOT
        assert normalize_link("/", "https://www.example.com") == ROOT


class TestRegistrableDomain:

    def test_multi_part_suffix(self):
        assert registrable_domain("https://docs.example.co.uk/x") == "example.co.uk"
        assert same_registrable_domain("https://www.example.co.uk/", "https://shop.example.co.uk/")

    def test_ip_hosts_compare_literally(self):
        assert registrable_domain("http://93.184.216.34/") == "93.184.216.34"


class TestRootValidation:

    def test_valid_root_loses_fragment(self):
        assert validate_root_url("https://example.com/start#intro") == "https://example.com/start"

    def test_bare_host_gets_root_path(self):
        assert validate_root_url("https://example.com") == "https://example.com/"
        assert validate_root_url("https://example.com#top") == "https://example.com/"
        assert validate_root_url("https://example.com?q=1") == "https://example.com/?q=1"

    @pytest.mark.parametrize("url", [
        "ftp://example.com/",
        "file:///etc/passwd",
        "http:///nohost",
        "http://localhost:8000/",
        "http://127.0.0.1/",
        "http://10.0.0.1/",
        "http://192.168.1.1/",
        "http://169.254.169.254/latest/meta-data",
        "http://[::1]/",
    ])
    def test_invalid_roots_rejected(self, url):
        with pytest.raises(InvalidRootURL):
            validate_root_url(url)

    def test_invalid_root_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_root_url("gopher://example.com/")
