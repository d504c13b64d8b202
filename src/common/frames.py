# ABOUTME: Converts scored records into pandas DataFrames for summaries and trends.
# ABOUTME: Keeps reporting code free of per-domain dict munging.

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import pandas as pd


def records_frame(records: Iterable, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Build a DataFrame from records exposing ``to_dict``.

    Enum members are flattened to their values. When ``records`` is empty the
    frame still carries ``columns`` so downstream groupbys do not fail.
    """

    rows: List[dict] = [r.to_dict() for r in records]
    if not rows:
        return pd.DataFrame(columns=list(columns or []))
    frame = pd.DataFrame(rows)
    if columns is not None:
        frame = frame[list(columns)]
    return frame


def column_mean(frame: pd.DataFrame, column: str) -> float:
    """Mean of ``column`` as a float, 0.0 for an empty frame."""

    if frame.empty:
        return 0.0
    return float(frame[column].astype(float).mean())


def column_total(frame: pd.DataFrame, column: str) -> int:
    if frame.empty:
        return 0
    return int(frame[column].sum())
