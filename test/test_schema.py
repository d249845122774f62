"""Tests for Spot and SpotCollection."""

from __future__ import annotations

import numpy as np
import pytest

from spot_link.data.schema import Spot, SpotCollection

from conftest import make_collection, make_spot


class TestSpot:

    def test_position_is_float_vector(self):
        s = Spot(position=[1, 2, 3])
        assert s.position.dtype == np.float64
        assert s.position.shape == (3,)
        assert s.ndim == 3

    def test_position_read_only(self):
        s = make_spot(1.0, 2.0)
        with pytest.raises(ValueError):
            s.position[0] = 5.0

    def test_features_read_only(self):
        s = make_spot(0.0, 0.0, QUALITY=2.0)
        assert s.feature("QUALITY") == 2.0
        with pytest.raises(TypeError):
            s.features["QUALITY"] = 3.0  # type: ignore[index]

    def test_frozen(self):
        s = make_spot()
        with pytest.raises(AttributeError):
            s.name = "other"  # type: ignore[misc]

    def test_missing_feature_default(self):
        s = make_spot()
        assert s.feature("MISSING") is None
        assert s.feature("MISSING", 7.0) == 7.0

    def test_identity_not_value_equality(self):
        a = make_spot(1.0, 1.0)
        b = make_spot(1.0, 1.0)
        assert a != b
        assert len({a, b}) == 2
        assert a == a

    def test_unique_ids(self):
        a, b = make_spot(), make_spot()
        assert a.spot_id != b.spot_id

    def test_squared_distance(self):
        assert make_spot(0.0, 0.0).squared_distance_to(make_spot(3.0, 4.0)) == pytest.approx(25.0)

    def test_squared_distance_dimension_mismatch(self):
        with pytest.raises(ValueError):
            Spot.at(0.0, 0.0).squared_distance_to(Spot.at(0.0, 0.0, 0.0))

    def test_repr_uses_name(self):
        assert "P" in repr(make_spot(0.0, 0.0, name="P"))


class TestSpotCollection:

    def test_frames_sorted_with_gaps(self):
        c = make_collection({5: [make_spot()], 0: [make_spot()], 2: [make_spot()]})
        assert c.frames() == [0, 2, 5]
        assert list(c) == [0, 2, 5]
        assert len(c) == 3

    def test_iterate_insertion_order(self):
        a, b, d = make_spot(name="a"), make_spot(name="b"), make_spot(name="d")
        c = make_collection({0: [a, b, d]})
        assert list(c.iterate(0)) == [a, b, d]

    def test_visibility_filtering(self):
        a, b = make_spot(), make_spot()
        c = SpotCollection()
        c.add(a, 0)
        c.add(b, 0, visible=False)
        assert list(c.iterate(0, visible_only=True)) == [a]
        assert list(c.iterate(0, visible_only=False)) == [a, b]
        assert c.n_spots(0, visible_only=True) == 1
        assert c.n_spots(0, visible_only=False) == 2
        assert not c.is_visible(b)

    def test_set_visible(self):
        a = make_spot()
        c = make_collection({0: [a]})
        c.set_visible(a, False)
        assert c.n_spots(0) == 0
        c.set_visible(a, True)
        assert c.n_spots(0) == 1

    def test_set_visible_unknown_spot(self):
        with pytest.raises(KeyError):
            SpotCollection().set_visible(make_spot(), True)

    def test_filter_predicate(self):
        spots = [make_spot(float(x), 0.0) for x in range(5)]
        c = make_collection({0: spots})
        c.filter(lambda s: s.position[0] >= 3)
        assert c.n_spots(0) == 2
        c.filter(lambda s: True)
        assert c.n_spots(0) == 5

    def test_n_spots_whole_collection(self):
        c = make_collection({0: [make_spot(), make_spot()], 3: [make_spot()]})
        assert c.n_spots() == 3

    def test_unknown_frame_is_empty(self):
        c = make_collection({0: [make_spot()]})
        assert list(c.iterate(9)) == []
        assert c.n_spots(9) == 0
        assert 9 not in c
        assert 0 in c

    def test_add_twice_rejected(self):
        a = make_spot()
        c = make_collection({0: [a]})
        with pytest.raises(ValueError):
            c.add(a, 1)

    def test_remove_keeps_frame(self):
        a = make_spot()
        c = make_collection({4: [a]})
        assert c.remove(a) is True
        assert c.remove(a) is False
        assert c.frames() == [4]
        assert c.n_spots(4) == 0

    def test_frame_of(self):
        a = make_spot()
        c = make_collection({7: [a]})
        assert c.frame_of(a) == 7
        assert c.frame_of(make_spot()) is None

    def test_add_frame_creates_empty_frame(self):
        c = SpotCollection()
        c.add_frame(3)
        assert c.frames() == [3]
        assert c.n_spots(3) == 0
