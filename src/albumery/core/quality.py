# ABOUTME: Quality scoring for an album's audio: lossless first, then bitrate tier, then completeness.
# ABOUTME: Pure functions over AudioAssets; scores compare with the ordinary < and == operators.

from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from albumery.formats.audio import AudioAsset

K = TypeVar("K", bound=Hashable)

# (minimum bitrate-equivalent kbps, tier), highest first. CD audio is 1411.
BITRATE_TIERS: tuple[tuple[int, int], ...] = (
    (2304, 8),
    (1411, 7),
    (320, 6),
    (256, 5),
    (192, 4),
    (160, 3),
    (128, 2),
    (96, 1),
)


def bitrate_tier(kbps: float) -> int:
    for minimum, tier in BITRATE_TIERS:
        if kbps >= minimum:
            return tier
    return 0


@dataclass(frozen=True, order=True)
class QualityScore:
    """Comparable quality of one album copy.

    Ordering uses (lossless, tier, completeness) only; two scores equal on
    all three are a tie, whatever their raw bitrates.
    """

    lossless: bool
    tier: int
    completeness: float
    bitrate_equivalent: float = field(default=0.0, compare=False)
    track_count: int = field(default=0, compare=False)

    def describe(self) -> dict[str, object]:
        return {
            "lossless": self.lossless,
            "tier": self.tier,
            "completeness": self.completeness,
            "bitrate_equivalent": round(self.bitrate_equivalent, 1),
            "track_count": self.track_count,
        }


def score(assets: Sequence[AudioAsset], expected_tracks: int | None = None) -> QualityScore:
    """Score one directory's assets.

    Raises:
        ValueError: If `assets` is empty; unplayable directories are excluded
            before scoring.
    """
    if not assets:
        raise ValueError("cannot score a directory with no playable assets")

    present = len(assets)
    expected = expected_tracks if expected_tracks and expected_tracks > 0 else present
    average = sum(a.bitrate_equivalent for a in assets) / present

    return QualityScore(
        lossless=any(a.lossless for a in assets),
        tier=bitrate_tier(average),
        completeness=min(1.0, round(present / expected, 4)),
        bitrate_equivalent=average,
        track_count=present,
    )


def score_group(assets_by_directory: Mapping[K, Sequence[AudioAsset]]) -> dict[K, QualityScore]:
    """Score every member of a duplicate group against the longest variant's track count."""
    expected = max((len(assets) for assets in assets_by_directory.values()), default=0)
    return {
        key: score(assets, expected_tracks=expected)
        for key, assets in assets_by_directory.items()
    }
