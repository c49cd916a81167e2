"""Unit tests for the geocoder."""
import responses
from responses import matchers

from adapters.geocoder import GEOCODE_URL, Geocoder, haversine_km

YAKIMA = (46.600825, -120.503357)


def _result(lat, lng):
    return {'status': 'OK', 'results': [{'geometry': {'location': {'lat': lat, 'lng': lng}}}]}


def test_haversine_km():
    seattle = (47.6062, -122.3321)
    assert 180 < haversine_km(YAKIMA, seattle) < 190
    assert haversine_km(YAKIMA, YAKIMA) == 0


class TestGeocoder:
    """Test cases for Geocoder class."""

    def test_unconfigured_returns_none(self):
        assert Geocoder(None).geocode('Franklin Park') is None

    @responses.activate
    def test_appends_home_region_hint(self):
        responses.add(
            responses.GET, GEOCODE_URL, json=_result(46.59, -120.54),
            match=[matchers.query_param_matcher(
                {'address': 'Franklin Park, Yakima, WA', 'key': 'k', 'region': 'us'}
            )]
        )

        assert Geocoder('k').geocode('Franklin Park') == (46.59, -120.54)

    @responses.activate
    def test_address_with_state_is_not_hinted(self):
        responses.add(
            responses.GET, GEOCODE_URL, json=_result(47.6, -122.3),
            match=[matchers.query_param_matcher(
                {'address': '400 Broad St, Seattle, WA 98109', 'key': 'k', 'region': 'us'}
            )]
        )

        assert Geocoder('k').geocode('400 Broad St, Seattle, WA 98109') == (47.6, -122.3)

    @responses.activate
    def test_far_hinted_result_is_retried_without_hint(self):
        responses.add(responses.GET, GEOCODE_URL, json=_result(40.71, -74.0))
        responses.add(responses.GET, GEOCODE_URL, json=_result(46.6, -120.5))

        assert Geocoder('k').geocode('Central Park') == (46.6, -120.5)
        assert len(responses.calls) == 2

    @responses.activate
    def test_results_are_cached(self):
        responses.add(responses.GET, GEOCODE_URL, json=_result(46.59, -120.54))
        geocoder = Geocoder('k')

        geocoder.geocode('Franklin Park')
        geocoder.geocode('  franklin park ')

        assert len(responses.calls) == 1

    @responses.activate
    def test_failures_return_none_and_are_not_cached(self):
        responses.add(responses.GET, GEOCODE_URL, json={'status': 'ZERO_RESULTS', 'results': []})
        responses.add(responses.GET, GEOCODE_URL, status=500)
        geocoder = Geocoder('k')

        assert geocoder.geocode('Atlantis') is None
        assert geocoder.geocode('Atlantis') is None
        assert len(responses.calls) == 2

    @responses.activate
    def test_malformed_results_return_none(self):
        responses.add(responses.GET, GEOCODE_URL, json={'status': 'OK', 'results': [{'geometry': {}}]})
        responses.add(responses.GET, GEOCODE_URL, json={'status': 'OK', 'results': ['oops']})
        responses.add(responses.GET, GEOCODE_URL,
                      json={'status': 'OK', 'results': [{'geometry': {'location': {'lat': 'n/a', 'lng': 1}}}]})
        responses.add(responses.GET, GEOCODE_URL, json=['not', 'an', 'object'])
        geocoder = Geocoder('k')

        for _ in range(4):
            assert geocoder.geocode('Somewhere, WA') is None
        assert len(responses.calls) == 4
