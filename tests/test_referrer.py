"""Tests for referrer classification and the referrer registry."""

import json

import pytest
from pydantic import ValidationError

from analytics_compose.referrer import (
    ParsedReferrer,
    ReferrerType,
    classify_referrer,
    get_referrer_type_summary,
    get_top_referrers,
)
from analytics_compose.registry import (
    ReferrerRecord,
    ReferrerRegistry,
    RegistryLoadError,
    get_default_registry,
    load_registry,
    normalize_registry_key,
)

DIRECT = {"type": "direct", "name": "Direct", "domain": "", "url": ""}


class TestDirectTraffic:
    """Test empty, malformed and self-referring referrers."""

    def test_none_is_direct(self):
        assert classify_referrer(None).to_dict() == DIRECT

    def test_empty_is_direct(self):
        assert classify_referrer("").to_dict() == DIRECT

    def test_none_and_empty_are_identical(self):
        assert classify_referrer(None) == classify_referrer("")

    def test_malformed_keeps_raw_url(self):
        """Unparseable referrers are direct but keep the original string."""
        info = classify_referrer("not a url")
        assert info.to_dict() == {"type": "direct", "name": "Direct", "domain": "", "url": "not a url"}

    def test_schemeless_host_is_malformed(self):
        info = classify_referrer("www.google.com")
        assert info.type == ReferrerType.DIRECT
        assert info.url == "www.google.com"

    def test_scheme_without_host_is_malformed(self):
        info = classify_referrer("https://")
        assert info.type == ReferrerType.DIRECT
        assert info.url == "https://"

    def test_broken_ipv6_host_is_malformed(self):
        info = classify_referrer("http://[::1/path")
        assert info.type == ReferrerType.DIRECT
        assert info.url == "http://[::1/path"

    def test_self_referral_subdomain(self):
        info = classify_referrer("https://sub.example.com/x", "example.com")
        assert info.to_dict() == DIRECT

    def test_self_referral_ignores_path_and_query(self):
        info = classify_referrer("https://example.com/search?q=shoes#top", "example.com")
        assert info.to_dict() == DIRECT

    def test_self_referral_is_case_insensitive(self):
        info = classify_referrer("https://WWW.Example.COM/", "Example.com")
        assert info.to_dict() == DIRECT

    def test_lookalike_domain_is_not_self(self):
        info = classify_referrer("https://notexample.com/", "example.com")
        assert info.type == ReferrerType.UNKNOWN
        assert info.domain == "notexample.com"


class TestRegistryMatching:
    """Test ancestor-domain lookups against the registry."""

    def test_bing_registry_hit(self):
        url = "https://www.bing.com/?q=shoes"
        info = classify_referrer(url)
        assert info == ParsedReferrer(type="search", name="Bing", domain="www.bing.com", url=url)

    def test_facebook_is_social(self):
        info = classify_referrer("https://www.facebook.com/post/123")
        assert info.type == ReferrerType.SOCIAL
        assert info.name == "Facebook"
        assert info.domain == "www.facebook.com"

    def test_exact_hostname_is_not_looked_up(self):
        """Only ancestors of the hostname are tried, never the hostname itself."""
        info = classify_referrer("https://t.co/abc123")
        assert info.type == ReferrerType.UNKNOWN
        assert info.name == "t.co"

    def test_first_ancestor_wins(self):
        info = classify_referrer("https://x.mail.google.com/mail/u/0/")
        assert info.type == ReferrerType.EMAIL
        assert info.name == "Gmail"

    def test_apex_match_for_deep_subdomain(self):
        info = classify_referrer("https://mail.google.com/mail/u/0/")
        assert info.type == ReferrerType.SEARCH
        assert info.name == "Google"

    def test_multi_label_suffix(self):
        info = classify_referrer("https://www.google.co.uk/search?q=test")
        assert info.name == "Google"
        assert info.domain == "www.google.co.uk"

    def test_custom_registry(self):
        registry = ReferrerRegistry({"example.org": ReferrerRecord(type="news", name="Example News")})
        info = classify_referrer("https://blog.example.org/post", registry=registry)
        assert info.type == "news"
        assert info.name == "Example News"

    def test_internationalized_hostname_is_punycoded(self):
        info = classify_referrer("https://www.über.com/")
        assert info.domain == "www.xn--ber-goa.com"

    def test_idna_2003_maps_sharp_s(self):
        """The stdlib idna codec folds ß to ss instead of punycoding it."""
        info = classify_referrer("https://straße.example.de/")
        assert info.domain == "strasse.example.de"


class TestUnregisteredHosts:
    """Test search detection and the unknown fallback."""

    def test_search_query_param(self):
        url = "https://search.unknown-engine.test/?q=x"
        info = classify_referrer(url)
        assert info.to_dict() == {
            "type": "search",
            "name": "search.unknown-engine.test",
            "domain": "search.unknown-engine.test",
            "url": url,
        }

    @pytest.mark.parametrize("param", ["q", "query", "search"])
    def test_all_search_params(self, param):
        info = classify_referrer(f"https://find.example.net/results?{param}=shoes")
        assert info.type == ReferrerType.SEARCH

    def test_blank_search_param_still_counts(self):
        info = classify_referrer("https://find.example.net/?q=")
        assert info.type == ReferrerType.SEARCH

    def test_other_params_are_unknown(self):
        info = classify_referrer("https://random-blog.com/post?page=2")
        assert info.type == ReferrerType.UNKNOWN
        assert info.name == "random-blog.com"

    def test_two_label_registered_domain_is_unknown(self):
        """google.com itself has no ancestor to look up."""
        info = classify_referrer("https://google.com/search?q=test")
        assert info.type == ReferrerType.SEARCH
        assert info.name == "google.com"

    def test_deterministic(self):
        url = "https://news.ycombinator.example/item?id=1"
        assert classify_referrer(url, "shop.test") == classify_referrer(url, "shop.test")


class TestReferrerSummaries:
    """Test aggregate helpers over classified referrers."""

    def test_type_summary_counts(self):
        infos = [
            classify_referrer(""),
            classify_referrer("https://www.bing.com/?q=a"),
            classify_referrer("https://www.bing.com/?q=b"),
            classify_referrer("https://blog.example.org/"),
        ]
        summary = get_referrer_type_summary(infos)
        assert summary["direct"] == 1
        assert summary["search"] == 2
        assert summary["unknown"] == 1
        assert summary["social"] == 0

    def test_top_referrers_excludes_direct(self):
        infos = [
            classify_referrer(""),
            classify_referrer(""),
            classify_referrer("https://www.bing.com/?q=a"),
            classify_referrer("https://www.facebook.com/"),
            classify_referrer("https://m.facebook.com/"),
        ]
        assert get_top_referrers(infos) == [("Facebook", 2), ("Bing", 1)]

    def test_top_referrers_limit(self):
        infos = [classify_referrer("https://www.facebook.com/"), classify_referrer("https://www.bing.com/")]
        assert len(get_top_referrers(infos, limit=1)) == 1


class TestRegistry:
    """Test registry construction and loading."""

    def test_default_registry_is_shared(self):
        assert get_default_registry() is get_default_registry()

    def test_registry_is_read_only(self):
        registry = get_default_registry()
        with pytest.raises(TypeError):
            registry["example.com"] = ReferrerRecord(type="x", name="X")

    def test_records_are_frozen(self):
        record = ReferrerRecord(type="search", name="Bing")
        with pytest.raises(ValidationError):
            record.name = "Other"

    def test_keys_are_normalized(self):
        assert normalize_registry_key("https://WWW.Example.com/path") == "www.example.com"
        assert normalize_registry_key("example.com.") == "example.com"

    def test_load_registry(self, tmp_path):
        path = tmp_path / "referrers.json"
        path.write_text(json.dumps({
            "Example.org": {"type": "news", "name": "Example News"},
            "broken.com": {"type": "news"},
        }))

        registry = load_registry(path)

        assert len(registry) == 1
        assert registry.lookup("example.org") == ReferrerRecord(type="news", name="Example News")
        assert registry.lookup("broken.com") is None

    def test_load_registry_over_builtin(self, tmp_path):
        path = tmp_path / "referrers.json"
        path.write_text(json.dumps({"bing.com": {"type": "search", "name": "Microsoft Bing"}}))

        registry = load_registry(path, include_builtin=True)

        assert registry.lookup("bing.com").name == "Microsoft Bing"
        assert registry.lookup("facebook.com").name == "Facebook"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(RegistryLoadError):
            load_registry(tmp_path / "missing.json")

    def test_non_object_raises(self, tmp_path):
        path = tmp_path / "referrers.json"
        path.write_text("[]")
        with pytest.raises(RegistryLoadError):
            load_registry(path)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
