"""Target-size search over encode quality and downscale factor."""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from PIL import Image

from .imaging import EncodeAttempt, EncodeSettings, encode_at

logger = logging.getLogger(__name__)

Estimator = Callable[[Image.Image, EncodeSettings, str], EncodeAttempt]


class SearchStage:
    """Stage labels for progress reporting."""
    SEARCHING = "Searching for target size"


@dataclass
class SearchState:
    """Bounds and best candidate for a single search run."""
    quality_low: float = 0.1
    quality_high: float = 1.0
    scale_low: float = 0.1
    scale_high: float = 1.0
    best_attempt: Optional[EncodeAttempt] = None
    iteration: int = 0

    def midpoints(self):
        return (
            (self.quality_low + self.quality_high) / 2,
            (self.scale_low + self.scale_high) / 2,
        )

    def record(self, attempt: EncodeAttempt, target_bytes: int) -> None:
        """Keep ``attempt`` if it is strictly closer to the target than the best so far."""
        if self.best_attempt is None or (
            abs(attempt.result_bytes - target_bytes)
            < abs(self.best_attempt.result_bytes - target_bytes)
        ):
            self.best_attempt = attempt

    def narrow(
        self,
        quality: float,
        scale: float,
        too_large: bool,
        quality_pivot: float = 0.5,
        scale_pivot: float = 0.8,
    ) -> None:
        """
        Tighten one axis after an attempt at (quality, scale).

        Too large: lower the quality ceiling while quality is above the pivot,
        then the scale ceiling. Too small: raise the scale floor while scale is
        below the pivot, then the quality floor.
        """
        if too_large:
            if quality > quality_pivot:
                self.quality_high = quality
            else:
                self.scale_high = scale
        else:
            if scale < scale_pivot:
                self.scale_low = scale
            else:
                self.quality_low = quality

    def converged(self, epsilon: float = 0.01) -> bool:
        return (
            self.quality_high - self.quality_low < epsilon
            and self.scale_high - self.scale_low < epsilon
        )


class TargetSizeSearch:
    """
    Bounded search for encode settings that hit a byte budget.

    Quality alone cannot push an image below a practical floor, so the
    search bisects quality and downscale together and switches axis at fixed
    pivots (quality 0.5, scale 0.8). The result is the best attempt found
    within the iteration budget, not the closest possible one.

    An attempt within TOLERANCE of the target ends the search immediately.
    Unreachable targets are not an error: the closest attempt is returned.
    """

    TOLERANCE = 0.05
    MAX_ITERATIONS = 20
    QUALITY_PIVOT = 0.5
    SCALE_PIVOT = 0.8
    MIN_BOUND = 0.1
    MAX_BOUND = 1.0
    CONVERGENCE_EPSILON = 0.01

    # Share of the overall progress bar the search occupies
    PROGRESS_START = 25
    PROGRESS_SPAN = 50

    def __init__(
        self,
        estimator: Estimator = encode_at,
        progress_callback: Optional[Callable[[str, int], None]] = None,
    ):
        """
        Initialize the search.

        Args:
            estimator: Callable encoding an image at given settings
            progress_callback: Optional callback for progress updates (stage, percentage)
        """
        self.estimator = estimator
        self.progress_callback = progress_callback
        self.iterations = 0

    def _report_progress(self, iteration: int):
        if self.progress_callback:
            percentage = self.PROGRESS_START + (iteration / self.MAX_ITERATIONS) * self.PROGRESS_SPAN
            self.progress_callback(SearchStage.SEARCHING, int(percentage))

    def within_tolerance(self, result_bytes: int, target_bytes: int) -> bool:
        ratio = result_bytes / target_bytes
        return 1 - self.TOLERANCE <= ratio <= 1 + self.TOLERANCE

    def search(
        self,
        image: Image.Image,
        target_bytes: int,
        fmt: str,
    ) -> Optional[EncodeAttempt]:
        """
        Search for the settings whose output lands closest to ``target_bytes``.

        Args:
            image: Decoded source image
            target_bytes: Desired output size, must be positive
            fmt: Output format

        Returns:
            The first attempt within tolerance, otherwise the closest attempt seen
        """
        if target_bytes <= 0:
            raise ValueError(f"Target size must be positive, got {target_bytes}")

        state = SearchState(
            quality_low=self.MIN_BOUND,
            quality_high=self.MAX_BOUND,
            scale_low=self.MIN_BOUND,
            scale_high=self.MAX_BOUND,
        )

        while state.iteration < self.MAX_ITERATIONS:
            state.iteration += 1
            self.iterations = state.iteration
            self._report_progress(state.iteration)

            quality, scale = state.midpoints()
            attempt = replace(
                self.estimator(image, EncodeSettings(quality, scale), fmt),
                iteration=state.iteration,
            )

            logger.debug(
                "Iteration %d: quality=%.4f scale=%.4f -> %d bytes (target %d)",
                state.iteration, quality, scale, attempt.result_bytes, target_bytes,
            )

            state.record(attempt, target_bytes)

            if self.within_tolerance(attempt.result_bytes, target_bytes):
                logger.info(
                    "Target reached after %d iterations: %d bytes", state.iteration,
                    attempt.result_bytes,
                )
                return attempt

            state.narrow(
                quality,
                scale,
                too_large=attempt.result_bytes > target_bytes,
                quality_pivot=self.QUALITY_PIVOT,
                scale_pivot=self.SCALE_PIVOT,
            )

            if state.converged(self.CONVERGENCE_EPSILON):
                logger.debug("Search bounds converged after %d iterations", state.iteration)
                break

        best = state.best_attempt
        if best is not None:
            logger.info(
                "Closest result after %d iterations: %d bytes (target %d)",
                state.iteration, best.result_bytes, target_bytes,
            )
        return best


def search_for_target(
    image: Image.Image,
    target_bytes: int,
    fmt: str,
    estimator: Estimator = encode_at,
    progress_callback: Optional[Callable[[str, int], None]] = None,
) -> Optional[EncodeAttempt]:
    """
    Convenience function to run a target-size search.

    Args:
        image: Decoded source image
        target_bytes: Desired output size in bytes
        fmt: Output format
        estimator: Encoder used for each attempt
        progress_callback: Optional progress callback

    Returns:
        Best EncodeAttempt found
    """
    return TargetSizeSearch(estimator, progress_callback).search(image, target_bytes, fmt)


def encode_at_quality(
    image: Image.Image,
    quality: float,
    fmt: str,
    estimator: Estimator = encode_at,
) -> EncodeAttempt:
    """Encode once at a fixed quality and full scale."""
    if not TargetSizeSearch.MIN_BOUND <= quality <= TargetSizeSearch.MAX_BOUND:
        raise ValueError(
            f"Quality must be between {TargetSizeSearch.MIN_BOUND} and "
            f"{TargetSizeSearch.MAX_BOUND}, got {quality}"
        )
    return estimator(image, EncodeSettings(quality=quality, scale=1.0), fmt)
