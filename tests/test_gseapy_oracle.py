import polars as pl

from de_gsea.enrichment_engine import EnrichmentEngine
from de_gsea.enrichment_oracle import GseapyPrerankOracle
from de_gsea.schema import ENRICHMENT_SCHEMA


def test_prerank_direction():
    genes = [f"GENE{i}" for i in range(300)]
    ranked = pl.DataFrame(
        {"geneId": genes, "Estimate": [(i - 150) / 50 for i in range(300)]}
    )
    sets = {"DOWN": set(genes[:60]), "UP": set(genes[-60:])}

    result = GseapyPrerankOracle(permutation_num=100, seed=7).enrich(ranked, sets, 50, 100)

    assert dict(result.schema) == ENRICHMENT_SCHEMA
    rows = {row["pathway"]: row for row in result.iter_rows(named=True)}
    assert set(rows) == {"DOWN", "UP"}
    assert rows["DOWN"]["NES"] < 0 < rows["UP"]["NES"]
    for row in rows.values():
        assert row["pval"] is not None
        assert row["leadingEdge"]
    assert set(rows["UP"]["leadingEdge"]) <= sets["UP"]


def test_set_covering_whole_ranked_list():
    genes = [f"GENE{i}" for i in range(50)]
    ranked = pl.DataFrame({"geneId": genes, "Estimate": [(i - 25) / 10 for i in range(50)]})

    result = GseapyPrerankOracle(permutation_num=100).enrich(ranked, {"ALL_GENES": set(genes)}, 50, 1500)

    assert result["pathway"].to_list() == ["ALL_GENES"]
    assert result["pval"][0] is None or result["pval"][0] >= 0


def test_whole_list_set_is_not_a_failed_pair(de_table, mapper, pathway_sets):
    engine = EnrichmentEngine(mapper, GseapyPrerankOracle(permutation_num=100))
    run = engine.run_all(de_table, pathway_sets)

    assert run.failed == {}
    # either tested, or reported as undefined
    assert run.table.height + sum(u.count for u in run.undefined) == 1


def test_no_sets():
    ranked = pl.DataFrame({"geneId": ["GENE1"], "Estimate": [1.0]})
    result = GseapyPrerankOracle().enrich(ranked, {}, 1, 10)
    assert result.is_empty()
    assert result.columns == list(ENRICHMENT_SCHEMA)
