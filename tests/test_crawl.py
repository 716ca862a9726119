import pytest

from leadcrawler.crawl import (
    STATUS_COMPLETED,
    STATUS_NOT_CRAWLED,
    STATUS_PARTIAL,
    CrawlResult,
    CrawlTarget,
    Frontier,
    crawl_business,
)
from leadcrawler.errors import FetchTimeout

SITE = "https://example.gr"


def target(url=SITE, business_id="b1"):
    return CrawlTarget(business_id=business_id, dataset_id="d1", website_url=url)


def clean_site():
    return {
        f"{SITE}/": """
            <html><body>
              <h1>Acme Ταβέρνα</h1>
              <a href="/about">About us</a>
              <a href="/contact">Contact</a>
              <a href="https://www.facebook.com/acme.gr">Facebook</a>
            </body></html>""",
        f"{SITE}/about": """
            <html><body><p>Family run since 1980.</p>
              <a href="/">Home</a><a href="/contact">Contact</a></body></html>""",
        f"{SITE}/contact": """
            <html><body>
              <a href="mailto:info@example.gr">info@example.gr</a>
              <a href="tel:+302101234567">+30 210 123 4567</a>
              <a href="https://www.instagram.com/acme_gr">Instagram</a>
              <a href="/">Home</a><a href="/about">About</a>
            </body></html>""",
    }


@pytest.mark.asyncio
async def test_clean_site_is_completed(fake_fetcher, crawl_options):
    fetcher = fake_fetcher(clean_site())
    result = await crawl_business(target(), crawl_options, fetcher=fetcher)

    assert result.status == STATUS_COMPLETED
    assert result.pages_visited == 3
    assert result.errors == []
    assert result.frontier_remaining == 0
    assert [e.value for e in result.emails] == ["info@example.gr"]
    assert result.emails[0].source_url == f"{SITE}/contact"
    assert [p.value for p in result.phones] == ["+302101234567"]
    assert result.phones[0].kind == "landline"
    assert f"{SITE}/contact" in result.contact_pages
    assert result.started_at and result.finished_at


@pytest.mark.asyncio
async def test_redirected_homepage_is_not_fetched_twice(fake_fetcher, crawl_options):
    fetcher = fake_fetcher(
        {
            "https://www.example.gr/": '<a href="/">Home</a><a href="/contact">Contact</a>',
            "https://www.example.gr/contact": '<p>info@example.gr</p><a href="/">Home</a>',
        },
        redirects={"https://example.gr/": "https://www.example.gr/"},
    )
    result = await crawl_business(target("example.gr"), crawl_options, fetcher=fetcher)

    assert fetcher.calls == ["https://example.gr/", "https://www.example.gr/contact"]
    assert result.pages_visited == 2
    assert result.status == STATUS_COMPLETED
    assert [e.value for e in result.emails] == ["info@example.gr"]


@pytest.mark.asyncio
async def test_redirect_onto_crawled_page_is_skipped(fake_fetcher, crawl_options):
    fetcher = fake_fetcher(
        {
            f"{SITE}/": '<a href="/contact">Contact</a><a href="/kontakt">Επικοινωνία</a>',
            f"{SITE}/contact": "<p>info@example.gr</p>",
        },
        redirects={f"{SITE}/kontakt": f"{SITE}/contact"},
    )
    result = await crawl_business(target(), crawl_options, fetcher=fetcher)

    assert len(fetcher.calls) == 3
    assert result.pages_visited == 2
    assert [e.value for e in result.emails] == ["info@example.gr"]


@pytest.mark.asyncio
async def test_social_profiles_only_from_homepage(fake_fetcher, crawl_options):
    result = await crawl_business(target(), crawl_options, fetcher=fake_fetcher(clean_site()))
    assert result.social == {"facebook": "https://www.facebook.com/acme.gr"}


@pytest.mark.asyncio
async def test_contact_pages_are_fetched_first(fake_fetcher, crawl_options):
    pages = {
        f"{SITE}/": '<a href="/menu">Menu</a><a href="/gallery">Gallery</a><a href="/contact">Contact</a>',
        f"{SITE}/menu": "<p>menu</p>",
        f"{SITE}/gallery": "<p>photos</p>",
        f"{SITE}/contact": "<p>info@example.gr</p>",
    }
    fetcher = fake_fetcher(pages)
    await crawl_business(target(), crawl_options, fetcher=fetcher)
    assert fetcher.calls[:2] == [f"{SITE}/", f"{SITE}/contact"]


@pytest.mark.asyncio
async def test_budget_exhaustion_is_partial(fake_fetcher, crawl_options):
    links = "".join(f'<a href="/page-{i}">Page {i}</a>' for i in range(1, 51))
    pages = {f"{SITE}/": f"<body>{links}</body>"}
    pages.update({f"{SITE}/page-{i}": "<p>nothing here</p>" for i in range(1, 51)})
    crawl_options.max_pages = 10
    fetcher = fake_fetcher(pages)

    result = await crawl_business(target(), crawl_options, fetcher=fetcher)

    assert result.status == STATUS_PARTIAL
    assert result.pages_visited == 10
    assert len(fetcher.calls) == 10
    assert result.frontier_remaining > 0
    assert result.page_limit == 10


@pytest.mark.asyncio
async def test_plan_page_limit_applies_under_run_ceiling(fake_fetcher, crawl_options):
    links = "".join(f'<a href="/page-{i}">Page {i}</a>' for i in range(1, 21))
    pages = {f"{SITE}/": f"<body>{links}</body>"}
    pages.update({f"{SITE}/page-{i}": "<p>x</p>" for i in range(1, 21)})
    fetcher = fake_fetcher(pages)

    result = await crawl_business(target(), crawl_options, fetcher=fetcher, page_limit=3)

    assert result.pages_visited == 3
    assert result.page_limit == 3
    assert len(fetcher.calls) == 3


@pytest.mark.asyncio
async def test_global_page_ceiling(fake_fetcher, crawl_options):
    crawl_options.max_pages = 500
    fetcher = fake_fetcher({f"{SITE}/": "<p>only page</p>"})
    result = await crawl_business(target(), crawl_options, fetcher=fetcher, page_limit=None)
    assert result.page_limit == 50


@pytest.mark.asyncio
async def test_unreachable_site(fake_fetcher, crawl_options):
    fetcher = fake_fetcher({})
    result = await crawl_business(target(), crawl_options, fetcher=fetcher)

    assert result.status == STATUS_NOT_CRAWLED
    assert result.pages_visited == 0
    assert len(result.errors) == len(fetcher.calls) == 1
    assert result.errors[0].url == f"{SITE}/"
    assert "Connection refused" in result.errors[0].message


@pytest.mark.asyncio
async def test_invalid_url_is_not_fetched(fake_fetcher, crawl_options):
    fetcher = fake_fetcher({})
    result = await crawl_business(target("not a url"), crawl_options, fetcher=fetcher)

    assert result.status == STATUS_NOT_CRAWLED
    assert len(result.errors) == 1
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_depth_limit(fake_fetcher, crawl_options):
    pages = {
        f"{SITE}/": '<a href="/a">A</a>',
        f"{SITE}/a": '<a href="/b">B</a>',
        f"{SITE}/b": '<a href="/c">C</a>',
        f"{SITE}/c": "<p>deep</p>",
    }
    crawl_options.max_depth = 1
    fetcher = fake_fetcher(pages)

    result = await crawl_business(target(), crawl_options, fetcher=fetcher)

    assert fetcher.calls == [f"{SITE}/", f"{SITE}/a"]
    assert result.status == STATUS_COMPLETED


@pytest.mark.asyncio
async def test_page_errors_make_result_partial(fake_fetcher, crawl_options):
    pages = {
        f"{SITE}/": '<a href="/contact">Contact</a><a href="/about">About</a><a href="/slow">Slow</a>',
        f"{SITE}/contact": (404, "<p>gone</p>"),
        f"{SITE}/about": "<p>Call 210 123 4567</p>",
        f"{SITE}/slow": FetchTimeout(f"{SITE}/slow", "Request timeout after 12s"),
    }
    result = await crawl_business(target(), crawl_options, fetcher=fake_fetcher(pages))

    assert result.status == STATUS_PARTIAL
    assert result.pages_visited == 2
    assert sorted(e.message for e in result.errors) == ["HTTP 404", "Request timeout after 12s"]
    assert [p.value for p in result.phones] == ["+302101234567"]


@pytest.mark.asyncio
async def test_values_deduplicated_across_pages(fake_fetcher, crawl_options):
    pages = {
        f"{SITE}/": '<p>info@example.gr</p><a href="/contact">Contact</a>',
        f"{SITE}/contact": "<p>INFO@example.gr or sales@example.gr</p>",
    }
    result = await crawl_business(target(), crawl_options, fetcher=fake_fetcher(pages))
    assert [(e.value, e.source_url) for e in result.emails] == [
        ("info@example.gr", f"{SITE}/"),
        ("sales@example.gr", f"{SITE}/contact"),
    ]


@pytest.mark.asyncio
async def test_external_links_are_not_followed(fake_fetcher, crawl_options):
    pages = {
        f"{SITE}/": '<a href="https://other.gr/contact">Partner</a><a href="https://www.example.gr/team">Team</a>',
        "https://www.example.gr/team": "<p>team</p>",
    }
    fetcher = fake_fetcher(pages)
    await crawl_business(target(), crawl_options, fetcher=fetcher)
    assert "https://other.gr/contact" not in fetcher.calls
    assert "https://www.example.gr/team" in fetcher.calls


@pytest.mark.asyncio
async def test_follow_social_profiles_adds_contacts(fake_fetcher, crawl_options):
    pages = clean_site()
    pages["https://www.facebook.com/acme.gr/directory_contact_info"] = (
        "<p>Email: fb@example.gr</p><p>Mobile: 691 234 5678</p>"
    )
    crawl_options.follow_social_profiles = True

    result = await crawl_business(target(), crawl_options, fetcher=fake_fetcher(pages))

    assert result.pages_visited == 3
    assert [e.value for e in result.emails] == ["info@example.gr", "fb@example.gr"]
    assert "+306912345678" in [p.value for p in result.phones]


@pytest.mark.asyncio
async def test_result_round_trips_through_dict(fake_fetcher, crawl_options):
    result = await crawl_business(target(), crawl_options, fetcher=fake_fetcher(clean_site()))
    restored = CrawlResult.from_dict(result.to_dict())
    assert restored == result


def test_frontier_front_insertion_and_membership():
    frontier = Frontier()
    frontier.push_back("https://example.gr/a", 1)
    frontier.push_back("https://example.gr/b", 1)
    frontier.push_front(["https://example.gr/contact", "https://example.gr/about"], 1)

    assert "https://example.gr/contact/" in frontier
    assert len(frontier) == 4
    assert frontier.pop() == ("https://example.gr/contact", 1)
    assert frontier.pop() == ("https://example.gr/about", 1)
    assert frontier.pending({"https://example.gr/a"}, max_depth=1) == 1
    assert frontier.pending(set(), max_depth=0) == 0
