from activity_timeline.models import UserPlace
from activity_timeline.places import (
    effective_radius_m,
    find_matching_place,
    match_place_id,
    place_category_for_inferred_type,
)

# 0.0009 degrees of latitude is ~100m
HOME = UserPlace(id="home", label="Home", category="home", latitude=51.5, longitude=-0.1, radius_m=150.0)
CAFE = UserPlace(id="cafe", label="Cafe", category="food", latitude=51.5009, longitude=-0.1, radius_m=150.0)


def test_no_match_outside_every_radius() -> None:
    assert find_matching_place(51.51, -0.1, [HOME, CAFE]) is None
    assert match_place_id(51.51, -0.1, [HOME, CAFE]) is None


def test_nearest_of_overlapping_places_wins() -> None:
    assert match_place_id(51.5002, -0.1, [HOME, CAFE]) == "home"
    assert match_place_id(51.5007, -0.1, [HOME, CAFE]) == "cafe"


def test_places_without_coordinates_are_ignored() -> None:
    ghost = UserPlace(id="ghost", label="Ghost", category=None, latitude=None, longitude=None)
    assert find_matching_place(51.5, -0.1, [ghost]) is None
    assert match_place_id(51.5, -0.1, [ghost, HOME]) == "home"


def test_non_positive_radius_falls_back_to_default() -> None:
    place = UserPlace(id="p", label="P", category=None, latitude=51.5, longitude=-0.1, radius_m=0.0)
    assert effective_radius_m(place) == 150.0
    assert match_place_id(51.5012, -0.1, [place]) == "p"


def test_radius_factor_widens_match() -> None:
    small = UserPlace(id="s", label="S", category=None, latitude=51.5, longitude=-0.1, radius_m=100.0)
    # ~133m away
    assert find_matching_place(51.5012, -0.1, [small]) is None
    assert find_matching_place(51.5012, -0.1, [small], radius_factor=1.5) is small


def test_category_for_inferred_type() -> None:
    assert place_category_for_inferred_type("home") == "home"
    assert place_category_for_inferred_type("work") == "work"
    assert place_category_for_inferred_type("frequent") == "other"
    assert place_category_for_inferred_type("unknown") == "other"
