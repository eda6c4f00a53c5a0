import pytest

from saferoute.errors import DecodeError
from saferoute.models import Coordinate
from saferoute.polyline import decode, encode

# Reference string from Google's polyline algorithm documentation
GOOGLE_SAMPLE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
GOOGLE_POINTS = [(-120.2, 38.5), (-120.95, 40.7), (-126.453, 43.252)]


class TestDecode:
    def test_empty_and_none(self):
        assert decode("") == []
        assert decode(None) == []

    def test_reference_sample(self):
        coords = decode(GOOGLE_SAMPLE)
        assert len(coords) == 3
        for c, (lng, lat) in zip(coords, GOOGLE_POINTS):
            assert c.lng == pytest.approx(lng, abs=1e-5)
            assert c.lat == pytest.approx(lat, abs=1e-5)

    def test_longitude_comes_first(self):
        c = decode(GOOGLE_SAMPLE)[0]
        assert c.as_pair() == pytest.approx((-120.2, 38.5))

    def test_single_point(self):
        # "??" is one vertex at (0, 0)
        assert decode("??") == [Coordinate(lng=0.0, lat=0.0)]

    def test_round_trip_jaipur_route(self):
        original = [
            Coordinate(lng=75.7878, lat=26.9196),
            Coordinate(lng=75.79012, lat=26.91911),
            Coordinate(lng=75.7960, lat=26.9190),
            Coordinate(lng=75.78001, lat=26.90555),
        ]
        decoded = decode(encode(original))
        assert len(decoded) == len(original)
        for a, b in zip(decoded, original):
            assert abs(a.lng - b.lng) <= 1e-5
            assert abs(a.lat - b.lat) <= 1e-5

    def test_encode_reference_sample(self):
        coords = [Coordinate(lng=lng, lat=lat) for lng, lat in GOOGLE_POINTS]
        assert encode(coords) == GOOGLE_SAMPLE


class TestMalformed:
    def test_truncated_value_raises(self):
        # "_" has the continuation bit set and nothing follows
        with pytest.raises(DecodeError):
            decode("_")

    def test_latitude_without_longitude_raises(self):
        with pytest.raises(DecodeError):
            decode("_p~iF")

    def test_dangling_vertex_after_valid_ones(self):
        with pytest.raises(DecodeError):
            decode(GOOGLE_SAMPLE + "?")

    def test_character_out_of_range_raises(self):
        with pytest.raises(DecodeError):
            decode("?\x10")

    def test_continuation_never_clears(self):
        with pytest.raises(DecodeError):
            decode("~" * 50)
