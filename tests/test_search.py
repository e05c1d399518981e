import io
import random

import pytest
from PIL import Image

from doctools.imaging import EncodeAttempt, EncodeSettings, OutputFormat, encode_at
from doctools.search import (
    SearchState,
    TargetSizeSearch,
    encode_at_quality,
    search_for_target,
)
from tests.conftest import noise_image


class FakeEstimator:
    """Returns sizes from a function of the call number and settings."""

    def __init__(self, size_for):
        self.size_for = size_for
        self.calls = []

    def __call__(self, image, settings, fmt):
        self.calls.append(settings)
        size = self.size_for(len(self.calls), settings)
        return EncodeAttempt(settings=settings, result_bytes=size, artifact=b"x" * 8)


def test_exits_on_first_attempt_within_tolerance():
    estimator = FakeEstimator(lambda n, s: [5000, 300, 1040, 1000][n - 1])

    attempt = search_for_target(None, 1000, OutputFormat.JPEG, estimator=estimator)

    assert len(estimator.calls) == 3
    assert attempt.result_bytes == 1040
    assert attempt.iteration == 3


def test_fixed_size_inside_band_exits_after_one_call():
    estimator = FakeEstimator(lambda n, s: 970)

    attempt = search_for_target(None, 1000, OutputFormat.JPEG, estimator=estimator)

    assert len(estimator.calls) == 1
    assert attempt.settings.quality == pytest.approx(0.55)
    assert attempt.settings.scale == pytest.approx(0.55)


def test_tolerance_band_edges():
    search = TargetSizeSearch()
    assert search.within_tolerance(950, 1000)
    assert search.within_tolerance(1050, 1000)
    assert not search.within_tolerance(949, 1000)
    assert not search.within_tolerance(1051, 1000)


@pytest.mark.parametrize("size", [10 ** 9, 1])
def test_unreachable_target_stops_at_iteration_cap(size):
    estimator = FakeEstimator(lambda n, s: size)

    attempt = search_for_target(None, 1000, OutputFormat.JPEG, estimator=estimator)

    assert len(estimator.calls) == TargetSizeSearch.MAX_ITERATIONS
    assert attempt is not None
    assert attempt.result_bytes == size


def test_too_large_lowers_quality_then_scale():
    estimator = FakeEstimator(lambda n, s: 10 ** 9)
    search_for_target(None, 1000, OutputFormat.JPEG, estimator=estimator)

    first, second, third = estimator.calls[:3]
    assert (first.quality, first.scale) == pytest.approx((0.55, 0.55))
    # quality 0.55 > 0.5, so the quality ceiling drops
    assert (second.quality, second.scale) == pytest.approx((0.325, 0.55))
    # quality 0.325 <= 0.5, so the scale ceiling drops instead
    assert (third.quality, third.scale) == pytest.approx((0.325, 0.325))


def test_too_small_raises_scale_then_quality():
    estimator = FakeEstimator(lambda n, s: 1)
    search_for_target(None, 1000, OutputFormat.JPEG, estimator=estimator)

    first, second, third, fourth = estimator.calls[:4]
    assert (first.quality, first.scale) == pytest.approx((0.55, 0.55))
    assert (second.quality, second.scale) == pytest.approx((0.55, 0.775))
    assert (third.quality, third.scale) == pytest.approx((0.55, 0.8875))
    # scale 0.8875 >= 0.8, so the quality floor rises
    assert (fourth.quality, fourth.scale) == pytest.approx((0.775, 0.8875))


@pytest.mark.parametrize("seed", range(25))
def test_result_is_never_worse_than_any_evaluated_attempt(seed):
    rng = random.Random(seed)
    target = 10_000
    sizes = []

    def size_for(n, settings):
        size = rng.randint(1, 40_000)
        sizes.append(size)
        return size

    attempt = search_for_target(None, target, OutputFormat.JPEG, estimator=FakeEstimator(size_for))

    assert len(sizes) <= TargetSizeSearch.MAX_ITERATIONS
    best_distance = min(abs(size - target) for size in sizes)
    assert abs(attempt.result_bytes - target) == best_distance


def test_best_attempt_keeps_first_of_equal_distance():
    state = SearchState()
    first = EncodeAttempt(settings=None, result_bytes=900, artifact=b"")
    tie = EncodeAttempt(settings=None, result_bytes=1100, artifact=b"")

    state.record(first, 1000)
    state.record(tie, 1000)

    assert state.best_attempt is first


@pytest.mark.parametrize("seed", range(20))
def test_bounds_stay_ordered_after_every_narrowing(seed):
    rng = random.Random(seed)
    state = SearchState()

    for _ in range(TargetSizeSearch.MAX_ITERATIONS):
        quality, scale = state.midpoints()
        state.narrow(quality, scale, too_large=rng.random() < 0.5)

        assert 0.1 <= state.quality_low <= state.quality_high <= 1.0
        assert 0.1 <= state.scale_low <= state.scale_high <= 1.0


def test_converged_needs_both_axes_narrow():
    state = SearchState(quality_low=0.5, quality_high=0.505, scale_low=0.2, scale_high=0.9)
    assert not state.converged()

    state.scale_low = 0.895
    assert state.converged()


def test_non_positive_target_is_rejected_before_encoding():
    estimator = FakeEstimator(lambda n, s: 1000)

    with pytest.raises(ValueError):
        search_for_target(None, 0, OutputFormat.JPEG, estimator=estimator)

    assert estimator.calls == []


def test_progress_is_monotonic():
    updates = []
    estimator = FakeEstimator(lambda n, s: 10 ** 9)

    search_for_target(
        None, 1000, OutputFormat.JPEG,
        estimator=estimator,
        progress_callback=lambda stage, pct: updates.append(pct),
    )

    assert len(updates) == TargetSizeSearch.MAX_ITERATIONS
    assert updates == sorted(updates)
    assert updates[0] >= 25
    assert updates[-1] == 75


def test_real_encoder_approaches_target():
    image = noise_image((600, 400))
    full = encode_at_quality(image, 1.0, OutputFormat.JPEG)
    target = full.result_bytes // 4

    attempt = search_for_target(image, target, OutputFormat.JPEG)

    assert attempt.result_bytes < full.result_bytes
    with Image.open(io.BytesIO(attempt.artifact)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.width <= 600


def test_quality_only_makes_one_full_scale_call(monkeypatch):
    def no_narrowing(*args, **kwargs):
        raise AssertionError("quality-only path must not narrow bounds")

    monkeypatch.setattr(SearchState, "narrow", no_narrowing)
    estimator = FakeEstimator(lambda n, s: 1234)

    attempt = encode_at_quality(None, 0.8, OutputFormat.WEBP, estimator=estimator)

    assert len(estimator.calls) == 1
    assert estimator.calls[0].scale == 1.0
    assert estimator.calls[0].quality == 0.8
    assert attempt.result_bytes == 1234


@pytest.mark.parametrize("quality", [0.05, 1.5])
def test_quality_only_rejects_out_of_range_quality(quality):
    with pytest.raises(ValueError):
        encode_at_quality(None, quality, OutputFormat.JPEG, estimator=encode_at)


def test_shared_attempt_from_estimator_is_not_rewritten():
    shared = EncodeAttempt(settings=EncodeSettings(0.5, 1.0), result_bytes=5000, artifact=b"x")

    attempt = search_for_target(None, 1000, OutputFormat.JPEG, estimator=lambda i, s, f: shared)

    assert attempt.iteration == 1
    assert shared.iteration == 0
