"""Unit tests for per-type source configuration."""
import pytest

from processor.errors import InvalidSourceConfigError, UnsupportedSourceTypeError
from processor.source_config import (
    DEFAULT_FIELD_MAPPING,
    EventbriteConfig,
    FacebookConfig,
    HtmlConfig,
    IcalConfig,
    JsonConfig,
    PageScrapeConfig,
    RegionalConfig,
    parse_source_config,
)


class TestParseSourceConfig:
    """Test cases for parse_source_config."""

    def test_configless_types(self):
        assert parse_source_config('ical', None) == IcalConfig()
        assert isinstance(parse_source_config('regional_html', {'year': '2025'}), RegionalConfig)

    def test_html_selectors_accept_aliases(self):
        config = parse_source_config('html', {
            'selectors': {'eventContainer': '.card', 'url': 'a.more', 'date': '.when'},
            'baseUrl': 'https://example.com',
        })

        assert isinstance(config, HtmlConfig)
        assert config.selectors.event_container == '.card'
        assert config.selectors.link == 'a.more'
        assert config.selectors.datetime == '.when'
        assert config.base_url == 'https://example.com'

    def test_html_requires_container(self):
        with pytest.raises(InvalidSourceConfigError):
            parse_source_config('html', {'selectors': {'title': 'h2'}})
        with pytest.raises(InvalidSourceConfigError):
            parse_source_config('html', {})

    def test_json_mapping_merges_over_defaults(self):
        config = parse_source_config('json', {'fieldMapping': {'lat': 'geo.lat'}})

        assert isinstance(config, JsonConfig)
        assert config.events_path == 'events'
        assert config.field_mapping['latitude'] == 'geo.lat'
        assert config.field_mapping['title'] == DEFAULT_FIELD_MAPPING['title']

    def test_json_rejects_unknown_field(self):
        with pytest.raises(InvalidSourceConfigError):
            parse_source_config('json', {'field_mapping': {'colour': 'c'}})

    def test_page_scrape_legacy_fallback_name(self):
        config = parse_source_config('page_scrape_api', {
            'firecrawlMethod': 'search',
            'fallbackType': 'yakima_valley',
        })

        assert config == PageScrapeConfig(method='search', fallback_type='regional_html')

    def test_page_scrape_rejects_unknown_method(self):
        with pytest.raises(InvalidSourceConfigError):
            parse_source_config('page_scrape_api', {'method': 'crawl'})

    def test_facebook_and_eventbrite(self):
        facebook = parse_source_config('facebook', {'facebookPageId': 123, 'eventIds': [1, '2']})
        eventbrite = parse_source_config('eventbrite', {'maxResults': '20'})

        assert facebook == FacebookConfig(page_id='123', event_ids=['1', '2'])
        assert eventbrite == EventbriteConfig(max_pages=3, max_results=20)

    def test_non_object_config(self):
        with pytest.raises(InvalidSourceConfigError):
            parse_source_config('json', ['events'])

    def test_unknown_type(self):
        with pytest.raises(UnsupportedSourceTypeError) as exc_info:
            parse_source_config('carrier_pigeon', {})
        assert str(exc_info.value) == 'Unsupported scrape type: carrier_pigeon'
