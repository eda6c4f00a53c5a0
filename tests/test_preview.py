from conftest import FakeHost, line
from saferoute.models import RouteCandidate, RouteSource
from saferoute.preview import ROUTE_COLOR, RoutePreview


def candidate(cid, *pairs, score=0.1):
    return RouteCandidate(id=cid, geometry=line(*pairs), label=f"r{cid}", score=score, source=RouteSource.CLIENT)


def test_draws_polyline_and_markers(host):
    preview = RoutePreview(host)
    preview.show(candidate(0, (75.78, 26.91), (75.79, 26.92), (75.80, 26.93)))

    kinds = sorted(o[0] for o in host.overlays.values())
    assert kinds == ["marker", "marker", "polyline"]
    polyline = host.overlays[preview.polyline]
    assert polyline[1] == [(26.91, 75.78), (26.92, 75.79), (26.93, 75.80)]
    assert polyline[2] == ROUTE_COLOR
    assert host.overlays[preview.start_marker][1] == (26.91, 75.78)
    assert host.overlays[preview.end_marker][1] == (26.93, 75.80)


def test_switching_route_replaces_drawing(host):
    preview = RoutePreview(host)
    preview.show(candidate(0, (75.78, 26.91), (75.80, 26.93)))
    preview.show(candidate(1, (75.70, 26.80), (75.71, 26.81)))
    assert len(host.overlays) == 3
    assert host.overlays[preview.start_marker][1] == (26.80, 75.70)


def test_empty_geometry_clears(host):
    preview = RoutePreview(host)
    preview.show(candidate(0, (75.78, 26.91), (75.80, 26.93)))
    assert preview.show(candidate(1)) is None
    assert host.overlays == {}


def test_without_host_returns_svg_preview():
    image = RoutePreview().show(candidate(0, (75.78, 26.91), (75.80, 26.93), score=0.3))
    assert image.path.startswith("M 1.00 99.00")
    assert image.color == "#f87171"


def test_clear(host):
    preview = RoutePreview(host)
    preview.show(candidate(0, (75.78, 26.91), (75.80, 26.93)))
    preview.clear()
    assert host.overlays == {}
    assert preview.polyline is None


def test_part_of_package_api():
    import saferoute

    assert saferoute.RoutePreview is RoutePreview
