from typing import List

import polars as pl
from loguru import logger

from de_gsea.de_consolidator import unique_pairs
from de_gsea.errors import InsufficientRows
from de_gsea.identifier_mapper import IdentifierMapper
from de_gsea.schema import CURATED_COLUMNS


class ResultCurator:
    """
    Turns the full enrichment table into its display form: leading-edge genes as
    gene symbols and, per pair, only the most extreme pathways.
    """

    def __init__(self, mapper: IdentifierMapper):
        self.mapper = mapper
        self.insufficient: List[InsufficientRows] = []

    def translate_leading_edge(self, table: pl.DataFrame) -> pl.DataFrame:
        """
        Replace the leadingEdge id lists with comma-joined gene symbols.

        All ids are resolved in a single bulk lookup; ids without a symbol are left out.
        """
        all_ids = set(table["leadingEdge"].explode().drop_nulls().to_list())
        symbols = self.mapper.to_symbols(all_ids)
        missing = len(all_ids) - len(symbols)
        if missing:
            logger.info(f"{missing} of {len(all_ids)} leading-edge identifiers have no gene symbol")

        translated = [
            ",".join(symbols[i] for i in (ids or []) if i in symbols)
            for ids in table["leadingEdge"].to_list()
        ]
        return table.with_columns(pl.Series("leadingEdge", translated, dtype=pl.Utf8))

    def curate_top_bottom(self, table: pl.DataFrame, n: int = 10) -> pl.DataFrame:
        """
        Keep the n lowest-NES and n highest-NES rows of every (contrast, subset) pair.

        Pairs with fewer than 2n rows are kept whole and reported in `insufficient`.
        """
        self.insufficient = []
        curated = []
        for contrast, subset in unique_pairs(table):
            rows = table.filter(
                (pl.col("Contrast") == contrast) & (pl.col("Subset") == subset)
            ).sort(["NES", "padj"], maintain_order=True)

            if rows.height < 2 * n:
                shortfall = InsufficientRows(contrast, subset, rows.height, 2 * n)
                logger.warning(str(shortfall))
                self.insufficient.append(shortfall)
                curated.append(rows)
            else:
                curated.append(pl.concat([rows.head(n), rows.tail(n)]))

        if not curated:
            return table.select(CURATED_COLUMNS)
        return pl.concat(curated).select(CURATED_COLUMNS)
