import pytest

from leadcrawler.social_contacts import contact_info_url, follow_social_profiles, social_identifier


def test_contact_info_urls():
    assert contact_info_url("https://www.facebook.com/acme.gr", "facebook") == (
        "https://www.facebook.com/acme.gr/directory_contact_info"
    )
    assert contact_info_url("https://www.linkedin.com/company/acme-gr", "linkedin") == (
        "https://www.linkedin.com/company/acme-gr/about/"
    )
    assert contact_info_url("https://www.facebook.com/profile.php?id=1", "facebook") is None
    assert contact_info_url("https://www.instagram.com/acme", "instagram") is None


def test_social_identifier():
    assert social_identifier("https://www.linkedin.com/in/jane-doe", "linkedin") == "jane-doe"
    assert social_identifier("https://www.facebook.com/", "facebook") is None


@pytest.mark.asyncio
async def test_follow_profiles_collects_and_skips_failures(fake_fetcher):
    fetcher = fake_fetcher({
        "https://www.facebook.com/acme.gr/directory_contact_info": "<p>hello@acme.gr · 210 123 4567</p>",
    })
    result = await follow_social_profiles(fetcher, {
        "facebook": "https://www.facebook.com/acme.gr",
        "linkedin": "https://www.linkedin.com/company/acme-gr",
        "instagram": "https://www.instagram.com/acme_gr",
    })

    assert result.pages_fetched == 1
    assert [e.value for e in result.emails] == ["hello@acme.gr"]
    assert [p.value for p in result.phones] == ["+302101234567"]
    assert len(result.errors) == 1
    assert result.errors[0].startswith("https://www.linkedin.com/company/acme-gr/about/")
    assert len(fetcher.calls) == 2

