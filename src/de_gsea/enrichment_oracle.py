from typing import Dict, Protocol, Set

import gseapy as gp
import pandas as pd
import polars as pl
from loguru import logger

from de_gsea.schema import ENRICHMENT_SCHEMA


class EnrichmentOracle(Protocol):
    """
    Rank-based set enrichment. Takes a ranked list (columns geneId, Estimate) and a
    gene-set collection and returns one row per evaluated set with columns
    pathway, NES, pval, padj and leadingEdge (list of gene ids).
    """

    def enrich(
        self,
        ranked: pl.DataFrame,
        pathway_sets: Dict[str, Set[str]],
        min_size: int,
        max_size: int,
    ) -> pl.DataFrame:
        ...


def _as_float(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class GseapyPrerankOracle:
    """Preranked GSEA through gseapy."""

    def __init__(self, permutation_num: int = 1000, seed: int = 42, threads: int = 1):
        self.permutation_num = permutation_num
        self.seed = seed
        self.threads = threads

    def enrich(
        self,
        ranked: pl.DataFrame,
        pathway_sets: Dict[str, Set[str]],
        min_size: int,
        max_size: int,
    ) -> pl.DataFrame:
        if not pathway_sets:
            return pl.DataFrame(schema=ENRICHMENT_SCHEMA)

        rnk = pd.Series(
            ranked["Estimate"].to_list(), index=ranked["geneId"].to_list(), dtype=float
        )
        try:
            res = gp.prerank(
                rnk=rnk,
                gene_sets={name: sorted(genes) for name, genes in pathway_sets.items()},
                min_size=min_size,
                max_size=max_size,
                permutation_num=self.permutation_num,
                seed=self.seed,
                threads=self.threads,
                outdir=None,
                no_plot=True,
                verbose=False,
            )
        except LookupError as e:
            # gseapy's own filter rejected every set, e.g. a set covering the whole ranked list
            if isinstance(e, KeyError) or "No gene sets passed" not in str(e):
                raise
            logger.warning(f"gseapy filtered out all {len(pathway_sets)} gene sets: {e}")
            return self._untested(pathway_sets)
        res2d = res.res2d
        logger.debug(f"gseapy returned {len(res2d)} rows")

        records = []
        for _, row in res2d.iterrows():
            lead = row.get("Lead_genes")
            lead_genes = [g for g in str(lead).split(";") if g] if isinstance(lead, str) else []
            records.append(
                {
                    "pathway": str(row["Term"]),
                    "NES": _as_float(row["NES"]),
                    "pval": _as_float(row["NOM p-val"]),
                    "padj": _as_float(row["FDR q-val"]),
                    "leadingEdge": lead_genes,
                }
            )
        result = pl.DataFrame(records, schema=ENRICHMENT_SCHEMA)

        tested = set(result["pathway"].to_list())
        skipped = {name: genes for name, genes in pathway_sets.items() if name not in tested}
        if skipped:
            logger.info(f"gseapy skipped {len(skipped)} gene sets, reported without p-value")
            result = pl.concat([result, self._untested(skipped)])
        return result

    @staticmethod
    def _untested(pathway_sets: Dict[str, Set[str]]) -> pl.DataFrame:
        """Rows without statistics for sets gseapy did not evaluate."""
        return pl.DataFrame(
            [
                {"pathway": name, "NES": None, "pval": None, "padj": None, "leadingEdge": []}
                for name in pathway_sets
            ],
            schema=ENRICHMENT_SCHEMA,
        )
