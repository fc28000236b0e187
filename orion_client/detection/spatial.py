from __future__ import annotations

from collections.abc import Sequence

# Centroid coordinates below / above these bounds leave the central band
LOWER_BOUND = 0.33
UPPER_BOUND = 0.66

LABEL_CATEGORIES: dict[str, str] = {
    'person': 'human',
    'bicycle': 'vehicle',
    'car': 'vehicle',
    'motorcycle': 'vehicle',
    'airplane': 'vehicle',
    'bus': 'vehicle',
    'train': 'vehicle',
    'truck': 'vehicle',
    'boat': 'vehicle',
    'bird': 'animal',
    'cat': 'animal',
    'dog': 'animal',
    'horse': 'animal',
    'sheep': 'animal',
    'cow': 'animal',
    'elephant': 'animal',
    'bear': 'animal',
    'zebra': 'animal',
    'giraffe': 'animal',
    'chair': 'furniture',
    'couch': 'furniture',
    'bed': 'furniture',
    'dining table': 'furniture',
    'toilet': 'furniture',
    'tv': 'electronics',
    'laptop': 'electronics',
    'mouse': 'electronics',
    'remote': 'electronics',
    'keyboard': 'electronics',
    'cell phone': 'electronics',
    'microwave': 'appliance',
    'oven': 'appliance',
    'toaster': 'appliance',
    'sink': 'appliance',
    'refrigerator': 'appliance',
}


def _band(value: float, low: str, high: str) -> str:
    if value < LOWER_BOUND:
        return low
    if value > UPPER_BOUND:
        return high
    return 'center'


def spatial_label(bbox: Sequence[float]) -> str:
    """
    Describe where a box sits in the frame, based on its centroid.

    Args:
        bbox (Sequence[float]): Normalised ``[minX, minY, maxX, maxY]``.

    Returns:
        str: One of ``"center"``, ``"top"``, ``"bottom"``, ``"left"``,
            ``"right"`` or a combination such as ``"top left"``. Boxes that
            do not have exactly four values are reported as ``"center"``.
    """
    if len(bbox) != 4:
        return 'center'

    x_center = (bbox[0] + bbox[2]) / 2
    y_center = (bbox[1] + bbox[3]) / 2
    vertical = _band(y_center, 'top', 'bottom')
    horizontal = _band(x_center, 'left', 'right')

    if vertical == 'center':
        return horizontal
    if horizontal == 'center':
        return vertical
    return f"{vertical} {horizontal}"


def category_for(label: str) -> str:
    """Map a detector label to its coarse category, ``"object"`` if unknown."""
    return LABEL_CATEGORIES.get(label.lower(), 'object')
