from typing import Dict, List, Sequence, Tuple

import polars as pl
from loguru import logger

from de_gsea.errors import EmptySampleSet, SchemaError
from de_gsea.expression import ExpressionAccessor
from de_gsea.schema import DE_KEY, PAIR_KEY, validate_de_table


def parse_contrast(label: str) -> Tuple[str, str]:
    """Split a contrast label "groupA - groupB" into its two group tokens."""
    parts = [p.strip() for p in str(label).split(" - ")]
    if len(parts) != 2 or not all(parts):
        raise SchemaError(f"Contrast label '{label}' is not of the form 'A - B'")
    return parts[0], parts[1]


def unique_pairs(table: pl.DataFrame) -> List[Tuple[str, str]]:
    """(Contrast, Subset) pairs of `table` in first-seen order."""
    pairs = table.select(PAIR_KEY).unique(maintain_order=True)
    return list(pairs.iter_rows())


class DEConsolidator:
    """
    Merges raw DE result tables into one canonical table and annotates it with
    subset-appropriate mean expression.

    Reports of the last call are kept on the instance: `discarded` holds the
    number of duplicate rows dropped by `consolidate`, `empty_pairs` the pairs
    for which no sample matched in `annotate_mean_expression` and `missing_genes`
    the number of genes per pair absent from the expression matrix.
    """

    def __init__(self):
        self.discarded = 0
        self.empty_pairs: List[EmptySampleSet] = []
        self.missing_genes: Dict[Tuple[str, str], int] = {}

    def consolidate(self, raw_tables: Sequence[pl.DataFrame]) -> pl.DataFrame:
        if not raw_tables:
            raise SchemaError("No DE tables given")

        tables = [
            validate_de_table(df, source=f"DE table {i}") for i, df in enumerate(raw_tables)
        ]
        combined = pl.concat(tables, how="vertical")
        if combined.is_empty():
            raise SchemaError("Consolidated DE table is empty")

        deduplicated = combined.unique(subset=DE_KEY, keep="first", maintain_order=True)
        self.discarded = combined.height - deduplicated.height
        if self.discarded:
            logger.warning(
                f"Discarded {self.discarded} duplicate (Gene, Contrast, Subset) rows, keeping first occurrences"
            )
        logger.info(
            f"Consolidated {len(raw_tables)} DE tables into {deduplicated.height} rows "
            f"over {len(unique_pairs(deduplicated))} contrast/subset pairs"
        )
        return deduplicated

    def annotate_mean_expression(
        self, table: pl.DataFrame, accessor: ExpressionAccessor, strict: bool = True
    ) -> pl.DataFrame:
        """
        Fill MeanExpression for every (Contrast, Subset) pair.

        The samples of a pair are those whose grouping labels lie in
        {groupA, groupB, subset}; the mean is taken over the genes of that pair only.

        Args:
            table: Canonical DE table.
            accessor: Expression matrix accessor.
            strict: Raise EmptySampleSet when a pair has no samples. Otherwise the
                pair keeps a null mean and is recorded in `empty_pairs`.

        Returns:
            pl.DataFrame: A new table, `table` is left untouched.
        """
        self.empty_pairs = []
        self.missing_genes = {}
        means = []
        for contrast, subset in unique_pairs(table):
            group_a, group_b = parse_contrast(contrast)
            samples = accessor.select_samples({group_a, group_b, subset})
            if not samples:
                error = EmptySampleSet(contrast, subset)
                if strict:
                    raise error
                logger.warning(f"{error}; mean expression left undefined")
                self.empty_pairs.append(error)
                continue

            genes = table.filter(
                (pl.col("Contrast") == contrast) & (pl.col("Subset") == subset)
            )["Gene"]
            pair_means = accessor.row_means(genes.to_list(), samples).with_columns(
                pl.lit(contrast).alias("Contrast"), pl.lit(subset).alias("Subset")
            )
            logger.debug(f"{contrast} / {subset}: {len(samples)} samples, {pair_means.height} genes")
            missing = genes.n_unique() - pair_means.height
            if missing:
                logger.warning(
                    f"{contrast} / {subset}: {missing} genes not in the expression matrix, mean expression left undefined"
                )
                self.missing_genes[(contrast, subset)] = missing
            means.append(pair_means)

        if not means:
            return table

        mean_table = pl.concat(means).rename({"MeanExpression": "_mean"})
        return (
            table.with_row_index("_row")
            .join(mean_table, on=DE_KEY, how="left")
            .sort("_row")
            .with_columns(pl.coalesce("_mean", "MeanExpression").alias("MeanExpression"))
            .drop(["_row", "_mean"])
        )
