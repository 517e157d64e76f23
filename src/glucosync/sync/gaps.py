"""Gap annotation for chart display."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta

from glucosync._constants import GAP_THRESHOLD
from glucosync.models.reading import DisplayPoint, Reading


def annotate(
    readings: Sequence[Reading | DisplayPoint],
    gap_threshold: timedelta = GAP_THRESHOLD,
) -> list[DisplayPoint]:
    """Map readings to display points flagging data gaps.

    A point has ``has_gap_before`` set when it lies more than
    *gap_threshold* after the previous point; the first point never does.
    The output has the same length and order as the input, which is
    expected to be sorted ascending. Display points are accepted too, so
    annotating already annotated output yields the same flags.
    """
    points: list[DisplayPoint] = []
    previous = None
    for item in readings:
        time = item.timestamp if isinstance(item, Reading) else item.time
        gap = previous is not None and time - previous > gap_threshold
        points.append(DisplayPoint(time=time, value=item.value, has_gap_before=gap))
        previous = time
    return points
