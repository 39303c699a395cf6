from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set

import polars as pl
from loguru import logger

from de_gsea.bundle import OutputBundle
from de_gsea.config import PipelineConfig
from de_gsea.de_consolidator import DEConsolidator
from de_gsea.enrichment_engine import EnrichmentEngine
from de_gsea.enrichment_oracle import EnrichmentOracle
from de_gsea.expression import ExpressionAccessor
from de_gsea.identifier_mapper import IdentifierMapper
from de_gsea.result_curator import ResultCurator


@dataclass
class RunReport:
    """Recoverable problems met during a run, grouped by kind."""
    discarded_duplicates: int = 0
    empty_sample_sets: List[str] = field(default_factory=list)
    missing_expression: Dict[str, int] = field(default_factory=dict)
    failed_pairs: Dict[str, str] = field(default_factory=dict)
    undefined_results: Dict[str, int] = field(default_factory=dict)
    insufficient_rows: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "discarded_duplicates": self.discarded_duplicates,
            "empty_sample_sets": list(self.empty_sample_sets),
            "missing_expression": dict(self.missing_expression),
            "failed_pairs": dict(self.failed_pairs),
            "undefined_results": dict(self.undefined_results),
            "insufficient_rows": dict(self.insufficient_rows),
        }


def _pair_key(contrast: str, subset: str) -> str:
    return f"{contrast}~{subset}"


@dataclass
class PipelineResult:
    de_table: pl.DataFrame
    enrichment_table: pl.DataFrame
    curated_table: pl.DataFrame
    report: RunReport

    def to_bundle(self) -> OutputBundle:
        return OutputBundle(
            de_table=self.de_table,
            enrichment_table=self.enrichment_table,
            curated_table=self.curated_table,
            report=self.report.to_dict(),
        )


class DEGSEAPipeline:
    """
    consolidate -> annotate mean expression -> enrichment per pair ->
    leading-edge translation -> top/bottom curation.

    Per-pair problems are reported in the RunReport; only malformed or empty
    input stops the run.
    """

    def __init__(
        self,
        config: PipelineConfig,
        mapper: IdentifierMapper,
        oracle: EnrichmentOracle,
        pathway_sets: Dict[str, Set[str]],
    ):
        self.config = config
        self.pathway_sets = pathway_sets
        self.consolidator = DEConsolidator()
        self.engine = EnrichmentEngine(
            mapper,
            oracle,
            min_set_size=config.min_set_size,
            max_set_size=config.max_set_size,
            n_jobs=config.n_jobs,
        )
        self.curator = ResultCurator(mapper)

    def run(self, raw_tables: Sequence[pl.DataFrame], accessor: ExpressionAccessor) -> PipelineResult:
        report = RunReport()

        de_table = self.consolidator.consolidate(raw_tables)
        report.discarded_duplicates = self.consolidator.discarded

        de_table = self.consolidator.annotate_mean_expression(de_table, accessor, strict=False)
        report.empty_sample_sets = [
            _pair_key(e.contrast, e.subset) for e in self.consolidator.empty_pairs
        ]
        report.missing_expression = {
            _pair_key(*pair): count for pair, count in self.consolidator.missing_genes.items()
        }

        run = self.engine.run_all(de_table, self.pathway_sets)
        report.failed_pairs = {_pair_key(*pair): msg for pair, msg in run.failed.items()}
        report.undefined_results = {
            _pair_key(u.contrast, u.subset): u.count for u in run.undefined
        }

        enrichment_table = self.curator.translate_leading_edge(run.table)
        curated_table = self.curator.curate_top_bottom(enrichment_table, n=self.config.top_n)
        report.insufficient_rows = {
            _pair_key(i.contrast, i.subset): i.available for i in self.curator.insufficient
        }

        logger.info(
            f"Pipeline finished: {de_table.height} DE rows, {enrichment_table.height} enrichment rows, "
            f"{curated_table.height} curated rows, {len(run.failed)} failed pairs"
        )
        return PipelineResult(de_table, enrichment_table, curated_table, report)
