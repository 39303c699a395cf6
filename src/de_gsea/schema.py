import polars as pl
from loguru import logger

from de_gsea.errors import SchemaError

DE_SCHEMA = {
    "Gene": pl.Utf8,
    "Contrast": pl.Utf8,
    "Subset": pl.Utf8,
    "Estimate": pl.Float64,
    "SE": pl.Float64,
    "PValue": pl.Float64,
    "FDR": pl.Float64,
    "MeanExpression": pl.Float64,
}
DE_REQUIRED = ["Gene", "Contrast", "Subset", "Estimate", "FDR"]
DE_KEY = ["Gene", "Contrast", "Subset"]
PAIR_KEY = ["Contrast", "Subset"]

# leadingEdge holds pathway-space ids until translated to a comma-joined string
ENRICHMENT_SCHEMA = {
    "pathway": pl.Utf8,
    "NES": pl.Float64,
    "pval": pl.Float64,
    "padj": pl.Float64,
    "leadingEdge": pl.List(pl.Utf8),
}
ENRICHMENT_COLUMNS = list(ENRICHMENT_SCHEMA) + PAIR_KEY

CURATED_COLUMNS = ["pathway", "NES", "padj", "leadingEdge", "Contrast", "Subset"]


def validate_de_table(df: pl.DataFrame, source: str = "DE table") -> pl.DataFrame:
    """
    Coerce a raw DE result table to the canonical DE schema.

    Required columns must be present; optional statistics are added as nulls,
    unexpected columns are dropped. MeanExpression is reset, it is only ever
    filled by mean-expression annotation.

    Raises:
        SchemaError: If a required column is missing or cannot be cast.
    """
    missing = [col for col in DE_REQUIRED if col not in df.columns]
    if missing:
        raise SchemaError(f"{source} is missing required columns: {', '.join(missing)}")

    extra = [col for col in df.columns if col not in DE_SCHEMA]
    if extra:
        logger.warning(f"{source}: dropping unexpected columns {extra}")

    try:
        return df.select(
            [
                pl.col(name).cast(dtype, strict=True).alias(name)
                if name in df.columns and name != "MeanExpression"
                else pl.lit(None, dtype=dtype).alias(name)
                for name, dtype in DE_SCHEMA.items()
            ]
        )
    except (pl.exceptions.InvalidOperationError, pl.exceptions.ComputeError) as e:
        raise SchemaError(f"{source} has columns of the wrong type: {e}") from e


def empty_enrichment_table() -> pl.DataFrame:
    return pl.DataFrame(schema={**ENRICHMENT_SCHEMA, "Contrast": pl.Utf8, "Subset": pl.Utf8})


def validate_enrichment_rows(df: pl.DataFrame) -> pl.DataFrame:
    """
    Project oracle output onto the enrichment schema.

    Raises:
        SchemaError: If a column is missing or holds values of the wrong type.
    """
    missing = [col for col in ENRICHMENT_SCHEMA if col not in df.columns]
    if missing:
        raise SchemaError(f"Enrichment result is missing columns: {', '.join(missing)}")
    try:
        return df.select(
            [pl.col(name).cast(dtype, strict=True) for name, dtype in ENRICHMENT_SCHEMA.items()]
        )
    except (pl.exceptions.InvalidOperationError, pl.exceptions.ComputeError) as e:
        raise SchemaError(f"Enrichment result has columns of the wrong type: {e}") from e
