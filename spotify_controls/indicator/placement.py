from typing import Mapping, Tuple

VALID_POSITIONS = (
    "far-left",
    "mid-left",
    "rightmost-left",
    "middle-left",
    "center",
    "middle-right",
    "leftmost-right",
    "mid-right",
    "far-right",
)
DEFAULT_POSITION = "rightmost-left"

VALID_CONTROLS_POSITIONS = ("left", "right")
DEFAULT_CONTROLS_POSITION = "right"


def normalize_position(position) -> str:
    return position if position in VALID_POSITIONS else DEFAULT_POSITION


def normalize_controls_position(controls_position) -> str:
    if controls_position in VALID_CONTROLS_POSITIONS:
        return controls_position
    return DEFAULT_CONTROLS_POSITION


def resolve_placement(position: str, box_sizes: Mapping[str, int]) -> Tuple[str, int]:
    """
    Maps a panel position setting onto a (box, index) pair.

    Args:
        position: One of VALID_POSITIONS; anything else falls back to DEFAULT_POSITION.
        box_sizes: Number of children currently in the "left", "center" and
            "right" panel boxes.
    Returns:
        The box name and the index to insert at.
    """
    position = normalize_position(position)
    left = box_sizes.get("left", 0)
    center = box_sizes.get("center", 0)
    right = box_sizes.get("right", 0)
    table = {
        "far-left": ("left", 0),
        "mid-left": ("left", left // 2),
        "rightmost-left": ("left", left),
        "middle-left": ("center", max(0, center // 2 - 1)),
        "center": ("center", center // 2),
        "middle-right": ("center", center // 2 + 1),
        "leftmost-right": ("right", 0),
        "mid-right": ("right", right // 2),
        "far-right": ("right", right),
    }
    return table[position]
