import pytest

from leadcrawler.errors import InvalidUrl
from leadcrawler.urls import (
    canonicalize,
    extract_domain,
    is_crawlable,
    normalize,
    resolve,
    same_registrable_domain,
)


class TestNormalize:
    def test_forces_https_and_drops_fragment(self):
        assert normalize("http://Example.gr/path#frag") == "https://example.gr/path"

    def test_protocol_relative(self):
        assert normalize("//example.gr/x") == "https://example.gr/x"

    def test_schemeless_host(self):
        assert normalize("  example.gr ") == "https://example.gr/"
        assert normalize("www.example.gr/contact") == "https://www.example.gr/contact"
        assert normalize("example.com.gr/contact.html") == "https://example.com.gr/contact.html"
        assert normalize("10.0.0.5/admin") == "https://10.0.0.5/admin"

    def test_keeps_query_and_path_case(self):
        assert normalize("https://example.gr/About?lang=el") == "https://example.gr/About?lang=el"

    def test_idempotent(self):
        once = normalize("HTTP://www.Example.gr:443/a/b?q=1#top")
        assert normalize(once) == once

    @pytest.mark.parametrize("value", ["", "   ", "/contact", "contact", "contact.html", "index.php",
                                       "mailto:info@example.gr",
                                       "javascript:void(0)", "ftp://example.gr/file", "http://exa mple.gr/"])
    def test_rejects(self, value):
        with pytest.raises(InvalidUrl):
            normalize(value)

    def test_rejects_none(self):
        with pytest.raises(InvalidUrl):
            normalize(None)

    def test_malformed_ipv6_is_invalid_url(self):
        with pytest.raises(InvalidUrl):
            normalize("http://[::1")


class TestResolve:
    def test_relative_paths(self):
        assert resolve("https://example.gr/a/b", "../c") == "https://example.gr/c"
        assert resolve("https://example.gr/a/b", "c") == "https://example.gr/a/c"
        assert resolve("https://example.gr/a/b", "/contact#form") == "https://example.gr/contact"

    def test_absolute_link_is_normalized(self):
        assert resolve("https://example.gr/", "http://other.gr/x") == "https://other.gr/x"

    @pytest.mark.parametrize("href", ["javascript:void(0)", "mailto:info@example.gr", "tel:+302101234567",
                                      "http://[::1"])
    def test_unusable_hrefs_give_none(self, href):
        assert resolve("https://example.gr/", href) is None


class TestDomains:
    def test_www_and_subdomains_match(self):
        assert same_registrable_domain("https://www.example.gr/a", "example.gr")
        assert same_registrable_domain("https://shop.example.gr/", "https://www.example.gr/")
        assert same_registrable_domain("example.gr", "EXAMPLE.GR")

    def test_other_sites_do_not_match(self):
        assert not same_registrable_domain("https://example.com/", "example.gr")
        assert not same_registrable_domain("https://notexample.gr/", "example.gr")
        assert not same_registrable_domain("", "example.gr")

    def test_extract_domain(self):
        assert extract_domain("https://WWW.Example.gr/path") == "www.example.gr"
        assert extract_domain("example.gr") == "example.gr"
        assert extract_domain("") is None


class TestCrawlable:
    def test_html_pages(self):
        assert is_crawlable("https://example.gr/contact")
        assert is_crawlable("https://example.gr/index.php?id=3")
        assert is_crawlable("https://example.gr/")

    def test_blocked_extensions(self):
        assert not is_crawlable("https://example.gr/menu.PDF")
        assert not is_crawlable("https://example.gr/img/logo.png")
        assert not is_crawlable("https://example.gr/files/catalog.zip")

    def test_non_http(self):
        assert not is_crawlable("ftp://example.gr/file")
        assert not is_crawlable("mailto:info@example.gr")


class TestCanonicalize:
    def test_strips_query_fragment_port_and_trailing_slash(self):
        assert canonicalize("HTTPS://WWW.Example.GR:443/About/?q=1#x") == "https://www.example.gr/About"

    def test_root_keeps_slash(self):
        assert canonicalize("https://example.gr") == "https://example.gr/"
        assert canonicalize("https://example.gr/") == "https://example.gr/"

    def test_non_default_port_kept(self):
        assert canonicalize("https://example.gr:8443/a") == "https://example.gr:8443/a"

    def test_international_domain_uses_punycode(self):
        assert canonicalize("https://παράδειγμα.gr/").startswith("https://xn--")

    def test_idempotent(self):
        for url in ["https://Example.gr/a/", "https://example.gr/?x=1", "https://παράδειγμα.gr/επαφή"]:
            once = canonicalize(url)
            assert canonicalize(once) == once

    def test_garbage_passes_through(self):
        assert canonicalize("not a url") == "not a url"
