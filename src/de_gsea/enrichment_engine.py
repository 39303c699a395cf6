from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

import polars as pl
from joblib import Parallel, delayed
from loguru import logger

from de_gsea.de_consolidator import unique_pairs
from de_gsea.enrichment_oracle import EnrichmentOracle
from de_gsea.errors import OracleFailure, UndefinedEnrichmentResult
from de_gsea.identifier_mapper import IdentifierMapper
from de_gsea.pathways import restrict_to_universe
from de_gsea.schema import ENRICHMENT_COLUMNS, empty_enrichment_table, validate_enrichment_rows

Pair = Tuple[str, str]


@dataclass(frozen=True)
class PairResult:
    """Outcome of the enrichment task of one (contrast, subset) pair."""
    contrast: str
    subset: str
    rows: Optional[pl.DataFrame] = None
    error: Optional[OracleFailure] = None
    undefined: Optional[UndefinedEnrichmentResult] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EnrichmentRun:
    table: pl.DataFrame
    pairs: List[Pair]
    failed: Dict[Pair, str] = field(default_factory=dict)
    undefined: List[UndefinedEnrichmentResult] = field(default_factory=list)


class EnrichmentEngine:
    """
    Ranks genes per (contrast, subset) pair and runs rank-based set enrichment.

    Every pair is an independent task reading the shared DE table, pathway
    collection and mapper; tasks run in a joblib thread pool and their results are
    concatenated in first-seen pair order.
    """

    def __init__(
        self,
        mapper: IdentifierMapper,
        oracle: EnrichmentOracle,
        min_set_size: int = 50,
        max_set_size: int = 1500,
        n_jobs: int = 1,
    ):
        self.mapper = mapper
        self.oracle = oracle
        self.min_set_size = min_set_size
        self.max_set_size = max_set_size
        self.n_jobs = n_jobs

    @staticmethod
    def enumerate_tests(table: pl.DataFrame) -> List[Pair]:
        return unique_pairs(table)

    def rank_genes(self, table: pl.DataFrame, contrast: str, subset: str) -> pl.DataFrame:
        """
        Ranked list of one pair in pathway-database identifiers.

        Genes without an identifier are dropped. The sort is ascending by estimate,
        so the most down-regulated genes come first; ties keep their input order.

        Returns:
            pl.DataFrame: Columns geneId and Estimate.
        """
        rows = table.filter(
            (pl.col("Contrast") == contrast) & (pl.col("Subset") == subset)
        ).drop_nulls("Estimate")
        genes = rows["Gene"].to_list()
        mapping = self.mapper.to_pathway_ids(genes)

        unmapped = sum(1 for g in genes if g not in mapping)
        if unmapped:
            logger.info(f"{contrast} / {subset}: {unmapped} of {len(genes)} genes have no identifier, dropped")

        mapping_df = pl.DataFrame(
            {"Gene": list(mapping.keys()), "geneId": list(mapping.values())},
            schema={"Gene": pl.Utf8, "geneId": pl.Utf8},
        )
        ranked = (
            rows.with_row_index("_row")
            .join(mapping_df, on="Gene", how="inner")
            .sort("_row")
            .unique(subset="geneId", keep="first", maintain_order=True)
            .select(["geneId", "Estimate"])
            .sort("Estimate", descending=False, maintain_order=True)
        )
        return ranked

    def run_enrichment(
        self,
        ranked: pl.DataFrame,
        pathway_sets: Dict[str, Set[str]],
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
    ) -> Tuple[pl.DataFrame, int]:
        """
        Enrichment of one ranked list.

        Returns:
            tuple: Rows sorted ascending by (NES, padj) with undefined p-values
                removed, and the number of rows removed.
        """
        min_size = self.min_set_size if min_size is None else min_size
        max_size = self.max_set_size if max_size is None else max_size

        sets = restrict_to_universe(pathway_sets, ranked["geneId"].to_list(), min_size, max_size)
        if not sets:
            logger.warning("No gene set within size bounds intersects the ranked genes")
            return validate_enrichment_rows(empty_enrichment_table()), 0

        result = validate_enrichment_rows(self.oracle.enrich(ranked, sets, min_size, max_size))
        defined = result.filter(pl.col("pval").is_not_null() & pl.col("pval").is_not_nan())
        dropped = result.height - defined.height
        return defined.sort(["NES", "padj"], descending=False, maintain_order=True), dropped

    @staticmethod
    def _retry_once(fn: Callable, contrast: str, subset: str):
        try:
            return fn()
        except Exception as first:
            logger.warning(f"{contrast} / {subset}: external call failed ({first}), retrying once")
            try:
                return fn()
            except Exception as second:
                raise OracleFailure(contrast, subset, second) from second

    def run_pair(
        self, table: pl.DataFrame, contrast: str, subset: str, pathway_sets: Dict[str, Set[str]]
    ) -> PairResult:
        try:
            ranked = self._retry_once(lambda: self.rank_genes(table, contrast, subset), contrast, subset)
            rows, dropped = self._retry_once(lambda: self.run_enrichment(ranked, pathway_sets), contrast, subset)
        except OracleFailure as e:
            logger.error(str(e))
            return PairResult(contrast, subset, error=e)

        undefined = None
        if dropped:
            undefined = UndefinedEnrichmentResult(contrast, subset, dropped)
            logger.info(str(undefined))

        rows = rows.with_columns(pl.lit(contrast).alias("Contrast"), pl.lit(subset).alias("Subset"))
        logger.info(f"{contrast} / {subset}: {rows.height} enrichment rows from {ranked.height} ranked genes")
        return PairResult(contrast, subset, rows=rows, undefined=undefined)

    def run_all(self, table: pl.DataFrame, pathway_sets: Dict[str, Set[str]]) -> EnrichmentRun:
        pairs = self.enumerate_tests(table)
        logger.info(f"Running enrichment for {len(pairs)} contrast/subset pairs with n_jobs={self.n_jobs}")

        results = Parallel(n_jobs=self.n_jobs, prefer="threads")(
            delayed(self.run_pair)(table, contrast, subset, pathway_sets)
            for contrast, subset in pairs
        )

        # order by first-seen pair, independent of completion order
        by_pair = {(r.contrast, r.subset): r for r in results}
        ordered = [by_pair[pair] for pair in pairs]

        failed = {(r.contrast, r.subset): str(r.error) for r in ordered if not r.ok}
        for (contrast, subset), message in failed.items():
            logger.warning(f"Pair {contrast} / {subset} failed and is excluded: {message}")

        frames = [r.rows for r in ordered if r.ok]
        combined = pl.concat(frames, how="vertical") if frames else empty_enrichment_table()
        return EnrichmentRun(
            table=combined.select(ENRICHMENT_COLUMNS),
            pairs=pairs,
            failed=failed,
            undefined=[r.undefined for r in ordered if r.undefined is not None],
        )
