"""Minimap geometry — proportional bar heights, hit testing, branch offshoots.

Pure numeric helpers; no I/O. Heights are in whatever unit the caller uses
(pixels, usually). Branch layouts are expressed as fractions of the main
spine's total height.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from sessiontree.models import (
    BranchPoint,
    ContentBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

# Alternate branches are compressed to at most this share of the main spine
MAX_BRANCH_FRACTION = 0.3
# Keeps zero-length messages clickable
MIN_BRANCH_BAR_FRACTION = 0.005

# Fixed reference height for precomputed spine bars; clients rescale to fit
REFERENCE_HEIGHT = 1000
MIN_BAR_HEIGHT = 2


@dataclass
class MinimapBranch:
    """One alternate path drawn as an offshoot of the main spine."""

    fork_fraction: float  # 0-1 position of the fork along the main spine
    bar_fractions: list[float] = field(default_factory=list)
    bar_types: list[str] = field(default_factory=list)  # role per bar, for coloring
    fork_uuid: str = ""
    path_index: int = 0

    def to_dict(self) -> dict:
        return {
            "fork_fraction": self.fork_fraction,
            "bar_fractions": self.bar_fractions,
            "bar_types": self.bar_types,
            "fork_uuid": self.fork_uuid,
            "path_index": self.path_index,
        }


def _json_length(value: object) -> int:
    # Compact separators, non-ASCII counted as single characters
    return len(json.dumps(value, separators=(",", ":"), ensure_ascii=False))


def estimate_content_length(content: list[ContentBlock]) -> int:
    """Rough visual weight of a message's content, in characters.

    Unknown block kinds count as zero.
    """
    length = 0
    for block in content:
        if isinstance(block, TextBlock):
            length += len(block.text)
        elif isinstance(block, ThinkingBlock):
            length += len(block.thinking)
        elif isinstance(block, ToolUseBlock):
            length += _json_length(block.input)
        elif isinstance(block, ToolResultBlock):
            if isinstance(block.content, str):
                length += len(block.content)
            else:
                length += _json_length([b.to_dict() for b in block.content])
    return length


def compute_bar_heights(
    lengths: list[float], total_height: float, min_bar_height: float,
) -> list[float]:
    """Split total_height across bars in proportion to lengths.

    Bars that would fall below min_bar_height are clamped up to it and the
    rest of the height is shared among the other bars in their original
    proportions. All-zero lengths split the height evenly.
    """
    if len(lengths) == 0:
        return []

    total_length = sum(lengths)
    if total_length == 0:
        return [total_height / len(lengths)] * len(lengths)

    raw = [length / total_length * total_height for length in lengths]

    below_min = sum(1 for h in raw if h < min_bar_height)
    if below_min == 0:
        return raw

    remaining = total_height - below_min * min_bar_height
    above_min_total = sum(h for h in raw if h >= min_bar_height)

    heights: list[float] = []
    for h in raw:
        if h < min_bar_height:
            heights.append(min_bar_height)
        elif above_min_total > 0:
            heights.append(h / above_min_total * remaining)
        else:
            heights.append(h)
    return heights


def hit_test_message_index(offset: float, bar_heights: list[float]) -> int:
    """Index of the bar containing offset. Past the end clamps to the last bar."""
    if len(bar_heights) == 0:
        return 0
    cumulative = 0.0
    for i, height in enumerate(bar_heights):
        cumulative += height
        if offset < cumulative:
            return i
    return len(bar_heights) - 1


def compute_branch_layout(
    main_bar_heights: list[float], branch_points: list[BranchPoint],
) -> list[MinimapBranch]:
    """Offshoot geometry for every alternate path (paths[1:]) of every fork.

    Each branch is scaled so its total is at most 30% of the main spine,
    preserving proportions between its own bars.
    """
    total_height = sum(main_bar_heights)
    if total_height == 0:
        return []

    max_branch_height = total_height * MAX_BRANCH_FRACTION
    branches: list[MinimapBranch] = []

    for bp in branch_points:
        fork_fraction = sum(main_bar_heights[: bp.message_index + 1]) / total_height

        # paths[0] is the active continuation, already drawn on the spine
        for path_index, path in enumerate(bp.paths[1:], start=1):
            lengths = [estimate_content_length(m.content) for m in path]
            path_total = sum(lengths)
            scale = min(max_branch_height, path_total) / path_total if path_total > 0 else 0
            branches.append(MinimapBranch(
                fork_fraction=fork_fraction,
                bar_fractions=[
                    max(MIN_BRANCH_BAR_FRACTION, length * scale / total_height)
                    for length in lengths
                ],
                bar_types=[m.role for m in path],
                fork_uuid=bp.fork_message_uuid,
                path_index=path_index,
            ))

    return branches
