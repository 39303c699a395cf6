import pytest
import polars as pl

from de_gsea.expression import ExpressionAccessor
from de_gsea.identifier_mapper import TableIdentifierMapper
from de_gsea.schema import ENRICHMENT_SCHEMA

GENES = [f"G{i}" for i in range(1, 51)]


class FakeOracle:
    """
    Deterministic stand-in for preranked GSEA: NES is the mean estimate of the
    set members, the leading edge is every member.
    """

    def __init__(self, undefined=(), fail_times=0):
        self.undefined = set(undefined)
        self.fail_times = fail_times
        self.calls = 0

    def enrich(self, ranked, pathway_sets, min_size, max_size):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise ConnectionError("oracle unavailable")
        scores = dict(zip(ranked["geneId"].to_list(), ranked["Estimate"].to_list()))
        records = []
        for name, genes in pathway_sets.items():
            nes = sum(scores[g] for g in genes) / len(genes)
            records.append(
                {
                    "pathway": name,
                    "NES": nes,
                    "pval": None if name in self.undefined else 0.01,
                    "padj": None if name in self.undefined else 0.05,
                    "leadingEdge": sorted(genes),
                }
            )
        return pl.DataFrame(records, schema=ENRICHMENT_SCHEMA)


@pytest.fixture
def de_table() -> pl.DataFrame:
    n = len(GENES)
    return pl.DataFrame(
        {
            "Gene": GENES,
            "Contrast": ["DKD - normal"] * n,
            "Subset": ["glomerulus"] * n,
            "Estimate": [(i - 25) / 10 for i in range(n)][::-1],
            "FDR": [0.01 * (i + 1) for i in range(n)],
        }
    )


@pytest.fixture
def accessor() -> ExpressionAccessor:
    samples = ["s1", "s2", "s3", "s4", "s5"]
    matrix = pl.DataFrame(
        {
            "Gene": GENES,
            "s1": [float(i) for i in range(50)],
            "s2": [float(i + 2) for i in range(50)],
            "s3": [float(i + 4) for i in range(50)],
            "s4": [100.0] * 50,
            "s5": [200.0] * 50,
        }
    )
    metadata = pl.DataFrame(
        {
            "sample": samples,
            "region": ["glomerulus", "glomerulus", "glomerulus", "tubule", "glomerulus"],
            "class": ["DKD", "normal", "DKD", "DKD", "AKI"],
        }
    )
    return ExpressionAccessor(matrix, metadata)


@pytest.fixture
def mapper() -> TableIdentifierMapper:
    table = pl.DataFrame(
        {
            "symbol": GENES,
            "entrez": [str(1000 + i) for i in range(len(GENES))],
        }
    )
    return TableIdentifierMapper(table)


@pytest.fixture
def pathway_sets() -> dict:
    return {"ALL_GENES": {str(1000 + i) for i in range(len(GENES))}}
