import pytest

from leadcrawler.extractors import (
    canonical_social_url,
    extract_contacts,
    extract_emails,
    extract_phones,
    extract_social,
    normalize_email,
    normalize_phone,
    phone_kind,
)

SOURCE = "https://example.gr/contact"


class TestNormalizeEmail:
    @pytest.mark.parametrize("raw,expected", [
        ("Info@Example.GR", "info@example.gr"),
        ("mailto:sales@example.gr?subject=Hello", "sales@example.gr"),
        ("MAILTO:office%40example.gr", "office@example.gr"),
        ("<booking@example.gr>", "booking@example.gr"),
        ("first.last+tag@mail.example.com.", "first.last+tag@mail.example.com"),
    ])
    def test_valid(self, raw, expected):
        assert normalize_email(raw) == expected

    @pytest.mark.parametrize("raw", ["", "not-an-email", "logo@2x.png", "icon@3x.webp", "user@host", "a@b.c"])
    def test_invalid(self, raw):
        assert normalize_email(raw) is None

    def test_idempotent(self):
        value = normalize_email("mailto:Info@Example.gr")
        assert normalize_email(value) == value


class TestNormalizePhone:
    @pytest.mark.parametrize("raw,expected", [
        ("+30 210 123 4567", "+302101234567"),
        ("210-1234567", "+302101234567"),
        ("(210) 123.4567", "+302101234567"),
        ("0030 6912345678", "+306912345678"),
        ("306912345678", "+306912345678"),
        ("691 234 5678", "+306912345678"),
        ("2310 123456", "+302310123456"),
    ])
    def test_greek_numbers(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("raw", ["", "12345", "+1 202 555 0143", "+44 20 7946 0958", "1234567890123"])
    def test_rejected(self, raw):
        assert normalize_phone(raw) is None

    def test_idempotent(self):
        assert normalize_phone("+302101234567") == "+302101234567"

    def test_kind(self):
        assert phone_kind("+306912345678") == "mobile"
        assert phone_kind("+302101234567") == "landline"


class TestEmails:
    def test_mailto_text_and_obfuscations(self):
        html = """
        <body>
          <a href="mailto:Info@Example.gr?subject=hi">Write to us</a>
          <p>Sales: sales@example.gr</p>
          <p>Bookings: booking [at] example [dot] gr</p>
          <p>Press: press(at)example(dot)gr</p>
          <p>Jobs: jobs @ example . gr</p>
          <img src="/img/logo@2x.png" alt="">
          <p>Banner: banner@2x.png</p>
        </body>
        """
        values = [e.value for e in extract_emails(html, SOURCE)]
        assert values == [
            "info@example.gr",
            "sales@example.gr",
            "booking@example.gr",
            "press@example.gr",
            "jobs@example.gr",
        ]

    def test_obfuscated_multi_label_domains(self):
        html = """
        <p>info [at] acme [dot] com [dot] gr</p>
        <p>sales(at)shop(dot)co(dot)uk</p>
        <p>desk @ news . com . gr</p>
        """
        values = [e.value for e in extract_emails(html, SOURCE)]
        assert values == ["info@acme.com.gr", "sales@shop.co.uk", "desk@news.com.gr"]

    def test_source_url_and_context(self):
        emails = extract_emails("<p>Email us at office@example.gr today</p>", SOURCE)
        assert len(emails) == 1
        assert emails[0].source_url == SOURCE
        assert "office@example.gr" in emails[0].context

    def test_script_content_is_ignored(self):
        html = '<body><script>var x = "tracker@analytics.com";</script><p>Hello</p></body>'
        assert extract_emails(html, SOURCE) == []

    def test_structured_data(self):
        html = """
        <script type="application/ld+json">
        {"@context": "https://schema.org", "@type": "Restaurant",
         "contactPoint": [{"@type": "ContactPoint", "email": "ld@example.gr"}]}
        </script>
        <span itemprop="email">micro@example.gr</span>
        <script type="application/ld+json">{not json</script>
        """
        values = {e.value for e in extract_emails(html, SOURCE)}
        assert values == {"ld@example.gr", "micro@example.gr"}

    def test_repeated_extraction_is_stable(self):
        html = '<a href="mailto:a@example.gr">a@example.gr</a> <p>A@EXAMPLE.GR</p>'
        first = extract_emails(html, SOURCE)
        second = extract_emails(html, SOURCE)
        assert [e.value for e in first] == [e.value for e in second] == ["a@example.gr"]


class TestPhones:
    def test_text_numbers_with_kinds(self):
        html = "<p>Τηλ: 210 123 4567, Κιν: 691 234 5678</p>"
        phones = extract_phones(html, SOURCE)
        assert [(p.value, p.kind) for p in phones] == [
            ("+302101234567", "landline"),
            ("+306912345678", "mobile"),
        ]

    def test_tel_links_and_prefixes(self):
        html = """
        <a href="tel:+302101234567">+30 210 123 4567</a>
        <p>Call +30 6912345678 or 0030 2310 123456</p>
        """
        values = [p.value for p in extract_phones(html, SOURCE)]
        assert values == ["+302101234567", "+306912345678", "+302310123456"]

    def test_structured_telephone(self):
        html = '<script type="application/ld+json">{"telephone": "+30 2310 123456"}</script>'
        assert [p.value for p in extract_phones(html, SOURCE)] == ["+302310123456"]

    def test_ignores_non_phone_digits(self):
        html = "<p>VAT 099999999. Order no 1234567890123. Since 2019. Zip 10558.</p>"
        assert extract_phones(html, SOURCE) == []


class TestSocial:
    @pytest.mark.parametrize("href,expected", [
        ("https://www.facebook.com/acme.gr/", ("facebook", "https://www.facebook.com/acme.gr")),
        ("https://m.facebook.com/profile.php?id=1234&ref=x", ("facebook", "https://www.facebook.com/profile.php?id=1234")),
        ("https://instagram.com/acme_gr?igshid=abc", ("instagram", "https://www.instagram.com/acme_gr")),
        ("https://www.linkedin.com/company/acme-gr/?trk=x", ("linkedin", "https://www.linkedin.com/company/acme-gr")),
        ("https://x.com/acme", ("twitter", "https://twitter.com/acme")),
        ("https://youtu.be/abc123", ("youtube", "https://www.youtube.com/watch?v=abc123")),
        ("https://www.youtube.com/channel/UC123/videos", ("youtube", "https://www.youtube.com/channel/UC123")),
        ("https://www.youtube.com/@acme", ("youtube", "https://www.youtube.com/@acme")),
        ("https://www.tiktok.com/@acme", ("tiktok", "https://www.tiktok.com/@acme")),
    ])
    def test_canonical_profiles(self, href, expected):
        assert canonical_social_url(href) == expected

    @pytest.mark.parametrize("href", [
        "https://www.facebook.com/sharer/sharer.php?u=https://example.gr",
        "https://twitter.com/intent/tweet?text=hi",
        "https://www.facebook.com/",
        "https://example.gr/facebook",
        "mailto:info@example.gr",
        "https://www.tiktok.com/tag/food",
    ])
    def test_non_profiles(self, href):
        assert canonical_social_url(href) is None

    def test_first_link_per_platform_wins(self):
        html = """
        <a href="https://www.facebook.com/sharer.php?u=x">Share</a>
        <a href="https://www.facebook.com/acme.gr">Facebook</a>
        <a href="https://www.facebook.com/other">Other</a>
        <a href="//instagram.com/acme_gr">Instagram</a>
        """
        socials = {s.platform: s.url for s in extract_social(html, "https://example.gr/")}
        assert socials == {
            "facebook": "https://www.facebook.com/acme.gr",
            "instagram": "https://www.instagram.com/acme_gr",
        }


def test_extract_contacts_combines_extractors():
    html = """
    <body>
      <a href="mailto:info@example.gr">Email</a>
      <a href="tel:2101234567">Call</a>
      <a href="https://www.facebook.com/acme.gr">fb</a>
    </body>
    """
    contacts = extract_contacts(html, SOURCE)
    assert [e.value for e in contacts.emails] == ["info@example.gr"]
    assert [p.value for p in contacts.phones] == ["+302101234567"]
    assert [s.platform for s in contacts.socials] == ["facebook"]

    without_social = extract_contacts(html, SOURCE, include_social=False)
    assert without_social.socials == []
