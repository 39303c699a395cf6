from cyclopts import App
from pathlib import Path
from typing import Optional
from loguru import logger

from de_gsea.bundle import InputBundle, write_xlsx
from de_gsea.config import PipelineConfig, get_configuration
from de_gsea.enrichment_oracle import GseapyPrerankOracle
from de_gsea.identifier_mapper import TableIdentifierMapper
from de_gsea.pathways import read_gmt
from de_gsea.pipeline import DEGSEAPipeline

app = App()


@app.default()
def de_gsea_run(
    input_bundle: str,
    gmt_file: str,
    id_table: str,
    out_dir: str = ".",
    run_id: str = "de_gsea",
    config_file: Optional[str] = None,
    n_jobs: Optional[int] = None,
):
    """
    Consolidate DE tables, run GSEA per contrast and subset, and write the result bundle.

    Args:
        input_bundle (str): Zip archive or directory with DE_* tables, expression matrix and samples table.
        gmt_file (str): Pathway collection in GMT format, in pathway-database identifiers.
        id_table (str): Annotation table mapping gene symbols to pathway-database identifiers.
        out_dir (str, optional): Base directory for output files. Defaults to ".".
        run_id (str, optional): Name used for the output files. Defaults to "de_gsea".
        config_file (str, optional): TOML configuration; the user configuration is used when missing,
            built-in defaults if there is none.
        n_jobs (int, optional): Override the number of parallel enrichment tasks.
    """
    if config_file:
        config = get_configuration(Path(config_file))
    else:
        try:
            config = get_configuration()
        except FileNotFoundError:
            logger.warning("No configuration file found, using default settings")
            config = PipelineConfig()
    if n_jobs is not None:
        config.n_jobs = n_jobs

    base_dir = Path(out_dir)
    base_dir.mkdir(parents=True, exist_ok=True)

    bundle = InputBundle.read(Path(input_bundle))
    accessor = bundle.accessor(config.grouping_columns)
    mapper = TableIdentifierMapper.from_file(
        Path(id_table), symbol_space=config.symbol_space, pathway_space=config.pathway_space
    )
    oracle = GseapyPrerankOracle(
        permutation_num=config.permutation_num, seed=config.seed
    )
    pipeline = DEGSEAPipeline(config, mapper, oracle, read_gmt(Path(gmt_file)))

    result = pipeline.run(list(bundle.de_tables.values()), accessor)

    output = result.to_bundle()
    bundle_path = output.write(base_dir / f"{run_id}_results.zip")
    xlsx_path = write_xlsx(output.tables(), base_dir / f"{run_id}_results.xlsx")
    logger.info(f"Results written to {bundle_path} and {xlsx_path}")
    if result.report.failed_pairs:
        logger.warning(f"Failed pairs: {list(result.report.failed_pairs)}")


if __name__ == '__main__':
    app()
