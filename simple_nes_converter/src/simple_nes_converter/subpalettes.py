"""Subpalette discovery: enumeration, usage statistics, repair and ranking.

The flow for one image is::

    aggregator = UsageAggregator()
    for local_palette in local_palettes:
        aggregator.add_tile(local_palette)
    colors = aggregator.rank_colors()
    background = select_background_color(colors)
    candidates = repair_subpalettes(aggregator.subpalettes, background, table)
    pool = limit_subpalettes(candidates, background, ScoreSelection(), 32, colors)
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, Iterable, List, Protocol, Sequence

from .errors import ConversionError, NoBackgroundSubpaletteError
from .palette import (
    COLORS_PER_SUBPALETTE,
    Color,
    NesColorTable,
    color_key,
    palette_key,
)
from .tiles import LocalColor

logger = logging.getLogger(__name__)

SCORE_COLOR_WEIGHT = 20


@dataclass
class ColorUsage:
    """Global usage of one color. ``ranking`` 0 is the most used color."""

    color: Color
    pixels_using: int = 0
    tiles_using: int = 0
    ranking: int | None = None

    @property
    def key(self) -> str:
        return color_key(self.color)


@dataclass
class SubpaletteCandidate:
    """A subpalette and the number of tiles that could use it."""

    palette: List[Color]
    tiles_using: int = 0

    @property
    def key(self) -> str:
        return palette_key(self.palette)

    def contains(self, color: Color) -> bool:
        return color in self.palette


def enumerate_palette_options(
    palette: Sequence[Color], max_colors: int = COLORS_PER_SUBPALETTE
) -> List[List[Color]]:
    """Return every ``max_colors``-color subset of ``palette``.

    A palette that already fits yields itself as the only option. Subsets keep
    the order of ``palette`` and each one appears exactly once.
    """

    if max_colors <= 0:
        return []
    if len(palette) <= max_colors:
        return [list(palette)]
    return [list(option) for option in combinations(palette, max_colors)]


class UsageAggregator:
    """Accumulate color and subpalette usage across tiles.

    Counts are plain sums, so the order in which tiles are added does not
    change the totals.
    """

    def __init__(self, max_colors: int = COLORS_PER_SUBPALETTE):
        self.max_colors = max_colors
        self.colors: Dict[str, ColorUsage] = {}
        self.subpalettes: Dict[str, SubpaletteCandidate] = {}
        self.tile_count = 0

    def add_color(self, color: Color, pixels_using: int = 0, tiles_using: int = 0) -> ColorUsage:
        key = color_key(color)
        usage = self.colors.get(key)
        if usage is None:
            usage = ColorUsage(color=color)
            self.colors[key] = usage
        usage.pixels_using += pixels_using
        usage.tiles_using += tiles_using
        return usage

    def add_subpalette(self, palette: Sequence[Color], tiles_using: int = 0) -> SubpaletteCandidate:
        key = palette_key(palette)
        candidate = self.subpalettes.get(key)
        if candidate is None:
            candidate = SubpaletteCandidate(palette=list(palette))
            self.subpalettes[key] = candidate
        candidate.tiles_using += tiles_using
        return candidate

    def add_tile(self, local_palette: Sequence[LocalColor]) -> List[List[Color]]:
        """Record one tile and return the subpalette options derived from it."""

        self.tile_count += 1
        for entry in local_palette:
            self.add_color(entry.color, pixels_using=entry.pixels_using, tiles_using=1)

        options = enumerate_palette_options(
            [entry.color for entry in local_palette], self.max_colors
        )
        for option in options:
            self.add_subpalette(option, tiles_using=1)
        return options

    def rank_colors(self) -> List[ColorUsage]:
        """Sort colors by pixel count then tile count and store their ranking."""

        ranked = sorted(
            self.colors.values(),
            key=lambda usage: (-usage.pixels_using, -usage.tiles_using),
        )
        for ranking, usage in enumerate(ranked):
            usage.ranking = ranking
        return ranked


def palette_score(
    candidate: SubpaletteCandidate, colors_by_key: Dict[str, ColorUsage], num_colors: int
) -> float:
    """Favor subpalettes usable by many tiles that hold globally dominant colors."""

    score = float(candidate.tiles_using)
    if num_colors <= 0:
        return score
    for color in candidate.palette:
        usage = colors_by_key.get(color_key(color))
        if usage is not None and usage.ranking is not None:
            score += SCORE_COLOR_WEIGHT * (1 - usage.ranking / num_colors) ** 2
    return score


def select_background_color(
    ranked_colors: Sequence[ColorUsage],
    override: Color | None = None,
    custom_subpalettes: Sequence[Sequence[Color]] | None = None,
) -> Color:
    """Pick the shared background color.

    An explicit ``override`` wins, then the first color of a custom palette,
    then the most used color of the image.
    """

    if override is not None:
        return override
    if custom_subpalettes:
        return custom_subpalettes[0][0]
    if not ranked_colors:
        raise NoBackgroundSubpaletteError("Image has no colors to pick a background from")
    return ranked_colors[0].color


def repair_subpalettes(
    subpalettes: Dict[str, SubpaletteCandidate],
    background: Color,
    table: NesColorTable,
    max_colors: int = COLORS_PER_SUBPALETTE,
) -> Dict[str, SubpaletteCandidate]:
    """Make every candidate contain ``background``.

    Candidates with room for one more color get the background appended; when
    the new key already exists the tile counts are merged. Full candidates
    without the background can never be used and are dropped. Returns a new
    dict keyed by palette key; the input is left untouched.
    """

    repaired: Dict[str, SubpaletteCandidate] = {}
    for key, candidate in subpalettes.items():
        if not candidate.contains(background) and len(candidate.palette) < max_colors:
            candidate = SubpaletteCandidate(
                palette=sorted(candidate.palette + [background], key=table.sort_key),
                tiles_using=candidate.tiles_using,
            )
            key = candidate.key
        elif not candidate.contains(background):
            continue
        else:
            candidate = SubpaletteCandidate(
                palette=list(candidate.palette), tiles_using=candidate.tiles_using
            )

        existing = repaired.get(key)
        if existing is None:
            repaired[key] = candidate
        else:
            existing.tiles_using += candidate.tiles_using

    dropped = len(subpalettes) - len(repaired)
    if dropped:
        logger.info("%d subpalettes merged or dropped while adding the background color", dropped)
    return repaired


class SelectionPolicy(Protocol):
    """Chooses which candidates form the pool evaluated for every tile."""

    def select(
        self,
        candidates: Sequence[SubpaletteCandidate],
        limit: int,
        colors: Sequence[ColorUsage],
    ) -> List[SubpaletteCandidate]:
        ...


class ScoreSelection:
    """Keep the ``limit`` candidates with the highest :func:`palette_score`."""

    def select(
        self,
        candidates: Sequence[SubpaletteCandidate],
        limit: int,
        colors: Sequence[ColorUsage],
    ) -> List[SubpaletteCandidate]:
        colors_by_key = {usage.key: usage for usage in colors}
        num_colors = len(colors)
        ranked = sorted(
            candidates,
            key=lambda candidate: -palette_score(candidate, colors_by_key, num_colors),
        )
        return ranked[:limit]


class RandomSelection:
    """Shuffle the candidates and keep the first ``limit``.

    Pass a ``seed`` (or a ``random.Random``) for reproducible runs.
    """

    def __init__(self, seed: int | None = None, rng: random.Random | None = None):
        self.rng = rng or random.Random(seed)

    def select(
        self,
        candidates: Sequence[SubpaletteCandidate],
        limit: int,
        colors: Sequence[ColorUsage],
    ) -> List[SubpaletteCandidate]:
        shuffled = list(candidates)
        self.rng.shuffle(shuffled)
        return shuffled[:limit]


SELECTION_POLICIES = ("score", "random")


def create_selection_policy(name: str, seed: int | None = None) -> SelectionPolicy:
    if name == "score":
        return ScoreSelection()
    if name == "random":
        return RandomSelection(seed)
    raise ConversionError(f"Unknown selection policy: {name}")


def filter_background_subpalettes(
    candidates: Iterable[SubpaletteCandidate], background: Color
) -> List[SubpaletteCandidate]:
    return [candidate for candidate in candidates if candidate.contains(background)]


def limit_subpalettes(
    subpalettes: Dict[str, SubpaletteCandidate],
    background: Color,
    policy: SelectionPolicy,
    limit: int,
    colors: Sequence[ColorUsage] = (),
) -> List[SubpaletteCandidate]:
    """Reduce the candidates to the pool evaluated against every tile."""

    logger.info("%d potential subpalettes", len(subpalettes))
    valid = filter_background_subpalettes(subpalettes.values(), background)
    logger.info("%d valid subpalettes using the background color", len(valid))

    if not valid:
        raise NoBackgroundSubpaletteError(
            f"No subpalette contains the background color {color_key(background)}"
        )
    return policy.select(valid, limit, colors)
