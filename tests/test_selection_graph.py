import math

import pytest
import polars as pl

from de_gsea.de_consolidator import DEConsolidator
from de_gsea.errors import SelectionError
from de_gsea.selection_graph import SelectionGraph, SelectionState


@pytest.fixture
def graph(de_table, accessor):
    tables = [
        de_table,
        de_table.with_columns(pl.lit("tubule").alias("Subset")),
        de_table.head(10).with_columns(pl.lit("AKI - normal").alias("Contrast")),
    ]
    consolidator = DEConsolidator()
    table = consolidator.annotate_mean_expression(
        consolidator.consolidate(tables), accessor, strict=False
    )
    curated = pl.DataFrame(
        {
            "pathway": ["DOWN", "UP", "TUBULE_ONLY"],
            "NES": [-2.0, 1.5, 1.0],
            "padj": [0.01, 0.1, 0.2],
            "leadingEdge": ["G50,G49", "G1,G2,G3", "G7"],
            "Contrast": ["DKD - normal", "DKD - normal", "DKD - normal"],
            "Subset": ["glomerulus", "glomerulus", "tubule"],
        }
    )
    return SelectionGraph(table, curated)


def test_initial_state(graph):
    assert graph.state == SelectionState.EMPTY
    assert graph.test_choices == ["DKD - normal", "AKI - normal"]
    assert graph.subset_choices == []
    assert graph.pathway_choices == []


def test_cascading_choices(graph):
    assert graph.select_test("DKD - normal") == ["glomerulus", "tubule"]
    assert graph.state == SelectionState.TEST_SELECTED

    assert graph.select_subset("glomerulus") == ["DOWN", "UP"]
    assert graph.state == SelectionState.SUBSET_SELECTED

    graph.select_pathway("UP")
    assert graph.state == SelectionState.PATHWAY_SELECTED
    assert graph.derived_pathway_gene_set() == {"G1", "G2", "G3"}


def test_reselecting_test_clears_downstream(graph):
    graph.select_test("DKD - normal")
    graph.select_subset("tubule")
    graph.select_pathway("TUBULE_ONLY")

    assert graph.select_test("AKI - normal") == ["glomerulus"]
    assert graph.subset is None
    assert graph.pathway is None
    assert graph.pathway_choices == []
    assert graph.state == SelectionState.TEST_SELECTED


def test_reselecting_subset_clears_pathway(graph):
    graph.select_test("DKD - normal")
    graph.select_subset("glomerulus")
    graph.select_pathway("DOWN")

    assert graph.select_subset("tubule") == ["TUBULE_ONLY"]
    assert graph.pathway is None
    assert graph.derived_pathway_gene_set() == set()


def test_pair_without_curated_rows(graph):
    graph.select_test("AKI - normal")
    assert graph.select_subset("glomerulus") == []
    assert graph.derived_de_view().height == 10


def test_invalid_selections(graph):
    with pytest.raises(SelectionError):
        graph.select_subset("glomerulus")
    with pytest.raises(SelectionError):
        graph.select_pathway("UP")
    with pytest.raises(SelectionError):
        graph.select_test("unknown - test")

    graph.select_test("AKI - normal")
    with pytest.raises(SelectionError):
        graph.select_subset("tubule")
    with pytest.raises(SelectionError):
        graph.select_pathway("UP")

    graph.select_test("DKD - normal")
    graph.select_subset("glomerulus")
    with pytest.raises(SelectionError):
        graph.select_pathway("TUBULE_ONLY")


def test_views_require_pair(graph):
    with pytest.raises(SelectionError):
        graph.derived_de_view()
    graph.select_test("DKD - normal")
    with pytest.raises(SelectionError):
        graph.pathway_score_view()


@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_volcano_view(graph):
    graph.select_test("DKD - normal")
    graph.select_subset("glomerulus")
    graph.select_pathway("DOWN")

    volcano = graph.volcano_view()
    assert volcano.height == 50
    assert volcano.filter(pl.col("inPathway"))["Gene"].sort().to_list() == ["G49", "G50"]
    g1 = volcano.filter(pl.col("Gene") == "G1").row(0, named=True)
    assert g1["negLog10FDR"] == pytest.approx(-math.log10(0.01))


@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_mean_expression_view(graph):
    graph.select_test("DKD - normal")
    graph.select_subset("glomerulus")

    view = graph.mean_expression_view()
    assert view.columns == ["Gene", "MeanExpression", "Estimate", "inPathway"]
    assert not view["inPathway"].any()
    g10 = view.filter(pl.col("Gene") == "G10").row(0, named=True)
    assert g10["MeanExpression"] == pytest.approx(11.0)


def test_pathway_score_view(graph):
    graph.select_test("DKD - normal")
    graph.select_subset("glomerulus")
    graph.select_pathway("DOWN")

    scores = graph.pathway_score_view()
    assert scores["pathway"].to_list() == ["DOWN", "UP"]
    assert scores["selected"].to_list() == [True, False]
    assert scores["negLog10padj"][0] == pytest.approx(2.0)


def test_tables_are_not_modified(graph):
    de_before = graph._de.clone()
    graph.select_test("DKD - normal")
    graph.select_subset("glomerulus")
    graph.volcano_view()
    assert graph._de.equals(de_before)
