from cyclopts import App
from loguru import logger

from de_gsea.config import write_initial_configuration

app = App()


@app.default()
def write_config(
    min_set_size: int = 50,
    max_set_size: int = 1500,
    top_n: int = 10,
    pathway_space: str = "entrez",
    overwrite: bool = False,
):
    """
    Write a configuration file with default values.

    Args:
        min_set_size: Smallest gene set (after restriction to ranked genes) to test.
        max_set_size: Largest gene set to test.
        top_n: Number of most negative and most positive pathways kept per contrast and subset.
        pathway_space: Identifier space of the pathway collection.
        overwrite: Replace an existing configuration file.
    The configuration file is located in:
    - Windows: %APPDATA%/de_gsea/config.toml
    - macOS/Linux: ~/.config/de_gsea/config.toml
    """
    try:
        write_initial_configuration(
            overwrite=overwrite,
            min_set_size=min_set_size,
            max_set_size=max_set_size,
            top_n=top_n,
            pathway_space=pathway_space,
        )
    except Exception as e:
        logger.error(f"Failed to create configuration file: {e}")
        raise


if __name__ == '__main__':
    app()
