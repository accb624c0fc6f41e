"""
Tests for the HTTP page source: URL building, timeout and retry wiring.
"""
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from ev_tracker.services.page_source import HttpPageSource


class StubResponse:

    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture
def source():
    page_source = HttpPageSource(
        base_url="https://example.test/lst",
        search_params={'fuel': 'E', 'sort': 'age'},
        timeout=7.5,
        max_retries=2,
        backoff_factor=0.25,
    )
    yield page_source
    page_source.close()


class TestHttpPageSource:

    def test_build_url_adds_page_to_search_params(self, source):
        url = urlparse(source.build_url(3))

        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://example.test/lst"
        assert parse_qs(url.query) == {'fuel': ['E'], 'sort': ['age'], 'page': ['3']}

    def test_search_params_are_not_mutated(self, source):
        source.build_url(5)
        assert source.search_params == {'fuel': 'E', 'sort': 'age'}

    def test_fetch_uses_timeout_and_returns_markup(self, source, monkeypatch):
        calls = []

        def fake_get(url, timeout=None):
            calls.append((url, timeout))
            return StubResponse("<html>page</html>")

        monkeypatch.setattr(source.session, 'get', fake_get)

        assert source.fetch(2) == "<html>page</html>"
        assert calls == [(source.build_url(2), 7.5)]

    def test_http_error_is_raised(self, source, monkeypatch):
        monkeypatch.setattr(source.session, 'get', lambda url, timeout=None: StubResponse("", 503))

        with pytest.raises(requests.HTTPError):
            source.fetch(1)

    def test_retry_strategy_is_mounted(self, source):
        retries = source.session.get_adapter("https://example.test/lst").max_retries

        assert retries.total == 2
        assert retries.backoff_factor == 0.25
        assert 503 in retries.status_forcelist
        assert source.session.get_adapter("http://example.test/lst").max_retries.total == 2

    def test_user_agent_header(self):
        page_source = HttpPageSource(user_agent="ev-tracker-test")
        try:
            assert page_source.session.headers['User-Agent'] == "ev-tracker-test"
        finally:
            page_source.close()
