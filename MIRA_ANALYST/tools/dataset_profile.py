"""Lightweight profiling of the uploaded CSV for the first prompt."""
from __future__ import annotations

import io
import logging
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)


def describe_csv(data: bytes, max_columns: int = 40) -> Optional[str]:
    """Row count plus column names and dtypes, or ``None`` if unparsable."""
    if not data:
        return None
    try:
        df = pd.read_csv(io.BytesIO(data))
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Could not profile dataset: %s", exc)
        return None

    lines = [f"{df.shape[0]} rows x {df.shape[1]} columns"]
    for column, dtype in list(df.dtypes.items())[:max_columns]:
        lines.append(f"- {column}: {dtype}")
    if df.shape[1] > max_columns:
        lines.append(f"- ... {df.shape[1] - max_columns} more columns")
    return "\n".join(lines)
