"""Writers for per-region count tables produced by ``alncache scan``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

COLUMNS = ["chrom", "start", "end", "groups", "alignments"]


def format_region_counts(rows: List[Dict[str, object]]) -> str:
    lines = ["\t".join(COLUMNS)]
    for row in rows:
        lines.append("\t".join(str(row[column]) for column in COLUMNS))
    return "\n".join(lines) + "\n"


def write_region_counts(
    rows: List[Dict[str, object]],
    output: Path,
    parquet: bool = False,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Write region counts as TSV, or as Parquet when ``parquet`` is set.

    Parquet output needs the optional ``parquet`` extra (pandas, pyarrow).
    """
    logger = logger or logging.getLogger(__name__)
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)

    if not parquet:
        output.write_text(format_region_counts(rows))
        logger.info(f"Wrote {len(rows)} regions to {output}")
        return output

    import pandas as pd
    import pyarrow as pa
    import pyarrow.parquet as pq

    if output.suffix != ".parquet":
        output = output.with_suffix(".parquet")
    df = pd.DataFrame(rows, columns=COLUMNS)
    logger.info(f"Writing Parquet file: {output}")
    table = pa.Table.from_pandas(df, preserve_index=False)
    pq.write_table(
        table,
        output,
        compression="snappy",
        use_dictionary=True,
        write_statistics=True,
    )
    return output
