import zipfile

import pytest
import polars as pl
import yaml

from de_gsea.bundle import InputBundle, OutputBundle, write_xlsx
from de_gsea.config import PipelineConfig
from de_gsea.errors import SchemaError
from de_gsea.pipeline import DEGSEAPipeline

from conftest import GENES, FakeOracle


@pytest.fixture
def pipeline(mapper, pathway_sets):
    return DEGSEAPipeline(PipelineConfig(), mapper, FakeOracle(), pathway_sets)


def test_end_to_end(pipeline, de_table, accessor):
    result = pipeline.run([de_table], accessor)

    assert result.de_table.height == 50
    assert result.de_table["MeanExpression"].null_count() == 0
    assert result.de_table.filter(pl.col("Gene") == "G1")["MeanExpression"][0] == pytest.approx(2.0)

    assert result.enrichment_table.height == 1
    assert result.enrichment_table["leadingEdge"][0] == ",".join(GENES)

    # one pathway is fewer than 2 * top_n rows, so everything is kept
    assert result.curated_table.height == 1
    assert result.report.insufficient_rows == {"DKD - normal~glomerulus": 1}
    assert result.report.failed_pairs == {}
    assert result.report.discarded_duplicates == 0
    assert result.report.missing_expression == {}


def test_report_collects_recoverable_problems(pipeline, de_table, accessor):
    medulla = de_table.with_columns(pl.lit("medulla").alias("Subset"))
    result = pipeline.run([de_table, de_table.head(5), medulla], accessor)

    assert result.report.discarded_duplicates == 5
    assert result.report.empty_sample_sets == ["DKD - normal~medulla"]
    medulla_rows = result.de_table.filter(pl.col("Subset") == "medulla")
    assert medulla_rows["MeanExpression"].null_count() == medulla_rows.height
    # enrichment does not depend on mean expression
    assert result.enrichment_table["Subset"].to_list() == ["glomerulus", "medulla"]


def test_malformed_input_stops_run(pipeline, de_table, accessor):
    with pytest.raises(SchemaError):
        pipeline.run([de_table.drop("Estimate")], accessor)


def test_output_bundle(pipeline, de_table, accessor, tmp_path):
    bundle = pipeline.run([de_table], accessor).to_bundle()
    path = bundle.write(tmp_path / "out" / "run_results.zip")

    with zipfile.ZipFile(path) as z:
        names = set(z.namelist())
        manifest = yaml.safe_load(z.read("manifest.yml"))
    assert names == {"de_table.parquet", "enrichment_table.parquet", "curated_table.parquet", "manifest.yml"}
    assert manifest["tables"]["de_table"] == [50, 8]

    restored = OutputBundle.read(path)
    for name, df in bundle.tables().items():
        assert restored.tables()[name].equals(df)
    assert restored.report == bundle.report


def _write_input_files(directory, de_table, accessor):
    directory.mkdir(parents=True, exist_ok=True)
    de_table.write_csv(directory / "DE_glomerulus.tsv", separator="\t")
    accessor._matrix.write_csv(directory / "expression.tsv", separator="\t")
    accessor._metadata.write_csv(directory / "samples.csv")


def test_input_bundle_from_dir(de_table, accessor, tmp_path):
    _write_input_files(tmp_path / "input", de_table, accessor)

    bundle = InputBundle.read(tmp_path / "input")

    assert list(bundle.de_tables) == ["DE_glomerulus"]
    assert bundle.de_tables["DE_glomerulus"].height == 50
    assert bundle.accessor().select_samples({"DKD", "normal", "glomerulus"}) == ["s1", "s2", "s3"]


def test_input_bundle_from_zip(de_table, accessor, tmp_path):
    input_dir = tmp_path / "input"
    _write_input_files(input_dir, de_table, accessor)
    zip_path = tmp_path / "input.zip"
    with zipfile.ZipFile(zip_path, 'w') as z:
        for file in input_dir.iterdir():
            z.write(file, arcname=f"bundle/{file.name}")

    bundle = InputBundle.read(zip_path)
    assert list(bundle.de_tables) == ["DE_glomerulus"]
    assert bundle.samples.height == 5


def test_input_bundle_without_de_tables(tmp_path):
    (tmp_path / "expression.tsv").write_text("Gene\ts1\nG1\t1.0\n")
    with pytest.raises(ValueError, match="DE_"):
        InputBundle.from_dir(tmp_path)


def test_write_xlsx(tmp_path):
    dataframes = {
        "enrichment": pl.DataFrame(
            {"pathway": ["P1"], "leadingEdge": [["1000", "1001"]]},
            schema={"pathway": pl.Utf8, "leadingEdge": pl.List(pl.Utf8)},
        ),
        "de": pl.DataFrame({"Gene": ["G1"], "Estimate": [1.5]}),
    }
    path = write_xlsx(dataframes, tmp_path / "results.xlsx")
    assert path.exists()
    assert path.stat().st_size > 0


def test_report_counts_genes_without_expression(pipeline, de_table, accessor):
    unmeasured = de_table.head(3).with_columns(pl.Series("Gene", ["X1", "X2", "X3"]))
    result = pipeline.run([de_table, unmeasured], accessor)

    assert result.report.missing_expression == {"DKD - normal~glomerulus": 3}
    assert result.to_bundle().manifest()["report"]["missing_expression"] == {"DKD - normal~glomerulus": 3}
