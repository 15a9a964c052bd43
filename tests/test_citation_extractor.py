"""Tests for citation extraction from provider answers."""

from app.analysis.citation_extractor import extract_citations, extract_domain, normalize_url
from app.gateway.types import ProviderKind


class TestNormalizeUrl:
    def test_drops_query_and_fragment(self):
        assert normalize_url("https://x.com/p?x=1#top") == "https://x.com/p"

    def test_lowercases_scheme_and_host_only(self):
        assert normalize_url("HTTPS://Example.COM/Path") == "https://example.com/Path"

    def test_non_url_returned_stripped(self):
        assert normalize_url("  not a url ") == "not a url"

    def test_extract_domain_strips_www(self):
        assert extract_domain("https://www.Example.com/a") == "example.com"
        assert extract_domain("garbage") == ""


class TestExtractCitations:
    def test_markdown_links_deduplicated_by_normalized_url(self):
        text = "See [a](https://x.com/p?x=1) and also [b](https://x.com/p?x=2)."
        citations = extract_citations(ProviderKind.CHATGPT, text)

        assert len(citations) == 1
        assert citations[0].url == "https://x.com/p?x=1"
        assert citations[0].text == "a"
        assert citations[0].source == "chatgpt"

    def test_idempotent_on_identical_input(self):
        text = "Read [docs](https://docs.acme.com/start) and [blog](https://acme.com/blog)."
        first = extract_citations(ProviderKind.PERPLEXITY, text)
        second = extract_citations(ProviderKind.PERPLEXITY, text)
        assert [c.to_dict() for c in first] == [c.to_dict() for c in second]

    def test_structured_citations_come_first(self):
        structured = [
            {"url": "https://acme.com/pricing", "title": "Pricing"},
            "https://globex.com/",
        ]
        text = "Compare [acme pricing](https://acme.com/pricing?ref=ai) with [initech](https://initech.com)."
        citations = extract_citations(ProviderKind.PERPLEXITY, text, structured)

        assert [c.url for c in citations] == [
            "https://acme.com/pricing",
            "https://globex.com/",
            "https://initech.com",
        ]
        assert citations[0].text == "Pricing"
        assert citations[1].text == "https://globex.com/"

    def test_source_annotation_for_chat_provider(self):
        text = "Acme leads the market. *(source: https://news.example.com/acme)*"
        citations = extract_citations(ProviderKind.CHATGPT, text)

        assert len(citations) == 1
        assert citations[0].url == "https://news.example.com/acme"

    def test_source_annotation_ignored_for_search_provider(self):
        text = "Acme leads the market. *(source: https://news.example.com/acme)*"
        assert extract_citations(ProviderKind.GEMINI, text) == []

    def test_numbered_references_pair_with_nth_url(self):
        text = (
            "Acme is fast [1] and cheap [2].\n\n"
            "Sources:\nhttps://reviews.example.com/acme.\nhttps://prices.example.com/crm"
        )
        citations = extract_citations(ProviderKind.PERPLEXITY, text)

        assert [c.url for c in citations] == [
            "https://reviews.example.com/acme",
            "https://prices.example.com/crm",
        ]
        assert [c.text for c in citations] == ["[1]", "[2]"]

    def test_numbered_marker_without_matching_url_is_skipped(self):
        text = "Claim [3] with only https://one.example.com in the text."
        assert extract_citations(ProviderKind.PERPLEXITY, text) == []

    def test_dedup_is_per_call(self):
        text = "[a](https://x.com/p)"
        assert len(extract_citations(ProviderKind.CHATGPT, text)) == 1
        assert len(extract_citations(ProviderKind.CHATGPT, text)) == 1

    def test_empty_input(self):
        assert extract_citations(ProviderKind.CHATGPT, "") == []
        assert extract_citations(ProviderKind.CHATGPT, "", None) == []

    def test_structured_only(self):
        citations = extract_citations(ProviderKind.GEMINI, "", [{"url": "https://acme.com", "title": "Acme"}])
        assert len(citations) == 1
        assert citations[0].to_dict() == {"url": "https://acme.com", "text": "Acme", "source": "gemini"}
