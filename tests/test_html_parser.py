"""Unit tests for the selector-driven HTML parser."""
from datetime import datetime

from dateutil import tz

from parsers.html_parser import parse_html
from processor.dates import format_instant
from processor.event_processor import hash_key
from processor.source_config import parse_source_config

PAGE = """
<html><body>
  <div class="event">
    <h3>Jazz Night</h3>
    <time datetime="2025-07-04T19:00:00">Friday</time>
    <span class="venue">Riverside Park</span>
    <p class="summary">Bring a blanket.</p>
    <a href="/events/jazz">Details</a>
  </div>
  <div class="event">
    <span class="venue">Nowhere</span>
  </div>
  <div class="event">
    <h3>Mystery Lecture</h3>
    <time>TBA</time>
  </div>
  <div class="event">
    <h3>Art Walk</h3>
    <time>July 11 at 5pm</time>
  </div>
</body></html>
"""


def _config(**overrides):
    raw = {
        'selectors': {
            'eventContainer': '.event',
            'title': 'h3',
            'description': '.summary',
            'date': 'time',
            'location': '.venue',
            'link': 'a',
        },
        'year': 2025,
    }
    raw.update(overrides)
    return parse_source_config('html', raw)


class TestParseHtml:
    """Test cases for parse_html."""

    def test_extracts_configured_fields(self):
        events = parse_html(PAGE, _config(), source_url='https://example.com/calendar')

        assert [e.title for e in events] == ['Jazz Night', 'Mystery Lecture', 'Art Walk']
        jazz = events[0]
        assert jazz.start == datetime(2025, 7, 4, 19, 0)
        assert jazz.location == 'Riverside Park'
        assert jazz.description == 'Bring a blanket.'
        assert jazz.external_url == 'https://example.com/events/jazz'
        assert jazz.external_event_id == hash_key('https://example.com/events/jazz')

    def test_text_date_uses_configured_year(self):
        art_walk = parse_html(PAGE, _config())[2]

        assert art_walk.start == datetime(2025, 7, 11, 17, 0)

    def test_unparseable_date_falls_back_to_now(self):
        now = datetime(2025, 6, 1, 12, 0, tzinfo=tz.UTC)

        lecture = parse_html(PAGE, _config(), now=now)[1]

        assert lecture.start == now
        assert lecture.external_url is None
        assert lecture.external_event_id == hash_key('|Mystery Lecture')

    def test_undated_item_keeps_the_same_key_across_runs(self):
        source_url = 'https://example.com/calendar'

        first = parse_html(PAGE, _config(), source_url=source_url, now=datetime(2025, 6, 1, tzinfo=tz.UTC))[1]
        second = parse_html(PAGE, _config(), source_url=source_url, now=datetime(2025, 6, 8, tzinfo=tz.UTC))[1]

        assert first.start != second.start
        assert first.external_event_id == second.external_event_id == hash_key(f'{source_url}|Mystery Lecture')

    def test_dated_item_without_link_is_keyed_on_title_and_start(self):
        art_walk = parse_html(PAGE, _config())[2]

        assert art_walk.external_event_id == hash_key('Art Walk' + format_instant(datetime(2025, 7, 11, 17, 0)))

    def test_base_url_overrides_source_url(self):
        config = _config(base_url='https://events.example.org/')

        jazz = parse_html(PAGE, config, source_url='https://example.com/calendar')[0]

        assert jazz.external_url == 'https://events.example.org/events/jazz'

    def test_image_title_uses_alt_text(self):
        config = parse_source_config('html', {'selectors': {'event_container': 'li', 'title': 'img'}})
        page = '<ul><li><img src="p.png" alt="Poster Show"><span>June 3, 2025</span></li></ul>'

        events = parse_html(page, config)

        assert events[0].title == 'Poster Show'

    def test_no_containers(self):
        assert parse_html('<html></html>', _config()) == []
