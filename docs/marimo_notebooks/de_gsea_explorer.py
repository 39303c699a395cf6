"""
DE-GSEA Results Explorer - Marimo Notebook

Cascading selection of test, subset and pathway over a de_gsea result bundle,
with volcano, mean-expression and pathway-score plots.
"""

import marimo

__generated_with = "0.16.5"
app = marimo.App(width="medium")


@app.cell
def _():
    import marimo as mo
    from pathlib import Path
    import plotly.express as px
    return Path, mo, px


@app.cell
def _(mo):
    mo.md(
        """
    # DE-GSEA Results Explorer

    Explore differential expression and gene set enrichment results written by
    `de_gsea_run`.

    ## 1. Load Your Data

    Specify the path to the `*_results.zip` bundle:
    """
    )
    return


@app.cell
def _(mo):
    bundle_path = mo.ui.text(value="de_gsea_results.zip", label="Result bundle", full_width=True)
    bundle_path
    return (bundle_path,)


@app.cell
def _(Path, bundle_path, mo):
    from de_gsea.bundle import OutputBundle
    from de_gsea.selection_graph import SelectionGraph

    mo.stop(
        not Path(bundle_path.value).exists(),
        mo.md(f"⚠️ Bundle not found: `{bundle_path.value}`. Try running `de_gsea_run` first!"),
    )
    bundle = OutputBundle.read(Path(bundle_path.value))
    graph = SelectionGraph(bundle.de_table, bundle.curated_table)
    mo.md(
        f"""
    **DE rows:** {bundle.de_table.height} &nbsp; **Enrichment rows:** {bundle.enrichment_table.height}
    &nbsp; **Curated rows:** {bundle.curated_table.height}
    """
    )
    return bundle, graph


@app.cell
def _(bundle, mo):
    report = bundle.report
    problems = {k: v for k, v in report.items() if v}
    mo.accordion({"Run report": mo.tree(problems) if problems else mo.md("No problems reported.")})
    return


@app.cell
def _(mo):
    mo.md(
        """
    ## 2. Select Test, Subset and Pathway

    Changing the test resets the subset and pathway; changing the subset resets the pathway.
    """
    )
    return


@app.cell
def _(graph, mo):
    test_dropdown = mo.ui.dropdown(options=graph.test_choices, label="Test")
    test_dropdown
    return (test_dropdown,)


@app.cell
def _(graph, mo, test_dropdown):
    mo.stop(test_dropdown.value is None)
    subset_choices = graph.select_test(test_dropdown.value)
    subset_dropdown = mo.ui.dropdown(options=subset_choices, label="Subset")
    subset_dropdown
    return (subset_dropdown,)


@app.cell
def _(graph, mo, subset_dropdown):
    mo.stop(subset_dropdown.value is None)
    pathway_choices = graph.select_subset(subset_dropdown.value)
    pathway_dropdown = mo.ui.dropdown(options=pathway_choices, label="Pathway")
    pathway_dropdown
    return (pathway_dropdown,)


@app.cell
def _(graph, pathway_dropdown):
    if pathway_dropdown.value is not None:
        graph.select_pathway(pathway_dropdown.value)
    selected_genes = graph.derived_pathway_gene_set()
    return (selected_genes,)


@app.cell
def _(mo):
    mo.md(
        """
    ---

    ## 3. Plots

    Genes in the leading edge of the selected pathway are highlighted.
    """
    )
    return


@app.cell
def _(graph, mo, px, selected_genes):
    mo.stop(graph.subset is None)
    volcano = graph.volcano_view()
    fig_volcano = px.scatter(
        volcano.to_pandas(),
        x="Estimate",
        y="negLog10FDR",
        color="inPathway",
        hover_name="Gene",
        title=f"Volcano: {graph.test} / {graph.subset}",
    )
    means = graph.mean_expression_view()
    fig_means = px.scatter(
        means.to_pandas(),
        x="MeanExpression",
        y="Estimate",
        color="inPathway",
        hover_name="Gene",
        title=f"Mean expression ({len(selected_genes)} pathway genes)",
    )
    mo.hstack([mo.ui.plotly(fig_volcano), mo.ui.plotly(fig_means)])
    return


@app.cell
def _(graph, mo, px, selected_genes):
    mo.stop(graph.subset is None)
    scores = graph.pathway_score_view()
    fig_scores = px.scatter(
        scores.to_pandas(),
        x="NES",
        y="negLog10padj",
        color="selected",
        hover_name="pathway",
        title="Curated pathways",
    )
    mo.ui.plotly(fig_scores)
    return


@app.cell
def _(mo):
    mo.md(
        """
    ---

    ## 4. Export Options

    You can export the rows of the current selection for further analysis.
    """
    )
    return


@app.cell
def _(graph, mo, selected_genes):
    mo.stop(graph.subset is None)
    mo.ui.table(graph.derived_de_view().to_pandas())
    return


if __name__ == "__main__":
    app.run()
