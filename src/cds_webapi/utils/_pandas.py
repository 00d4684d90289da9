# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Internal pandas helpers"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

import pandas as pd

from ..models.record import Record

FORMATTED_SUFFIX = "_formatted"


def dataframe_to_records(df: pd.DataFrame, na_as_null: bool = False) -> List[Dict[str, Any]]:
    """Convert a DataFrame to a list of dicts, converting Timestamps to ISO strings.

    :param df: Input DataFrame.
    :param na_as_null: When False (default), missing values are omitted from each dict.
        When True, missing values are included as None (sends null, clearing the field).
    """
    records = []
    for row in df.to_dict(orient="records"):
        clean = {}
        for k, v in row.items():
            if isinstance(v, (list, dict)) or pd.notna(v):
                clean[k] = v.isoformat() if isinstance(v, pd.Timestamp) else v
            elif na_as_null:
                clean[k] = None
        records.append(clean)
    return records


def records_to_dataframe(records: Iterable[Record], include_formatted: bool = False) -> pd.DataFrame:
    """Build a DataFrame from records.

    :param include_formatted: Add a ``<column>_formatted`` column next to each
        attribute that has a server-formatted value.
    """
    rows = []
    for record in records:
        row = record.to_dict()
        if include_formatted:
            for name, text in record.formatted_values.items():
                row[f"{name}{FORMATTED_SUFFIX}"] = text
        rows.append(row)
    return pd.DataFrame(rows)
