from pathlib import Path
from typing import Iterable, List, Sequence, Set

import polars as pl
from loguru import logger

from de_gsea.errors import SchemaError


def _read_table(path: Path) -> pl.DataFrame:
    path = Path(path)
    if path.suffix == ".parquet":
        return pl.read_parquet(path)
    separator = "," if path.suffix == ".csv" else "\t"
    return pl.read_csv(path, separator=separator)


class ExpressionAccessor:
    """
    Read-only view of a normalized, log-transformed expression matrix.

    The matrix is a wide table with a `Gene` column and one numeric column per
    sample. Sample metadata has one row per sample, a `sample` column and the
    grouping columns used to select samples (by default `region` and `class`).
    """

    def __init__(
        self,
        matrix: pl.DataFrame,
        metadata: pl.DataFrame,
        grouping_columns: Sequence[str] = ("region", "class"),
    ):
        if "Gene" not in matrix.columns:
            raise SchemaError("Expression matrix needs a 'Gene' column")
        missing = [col for col in ["sample", *grouping_columns] if col not in metadata.columns]
        if missing:
            raise SchemaError(f"Sample metadata is missing columns: {', '.join(missing)}")

        sample_cols = [col for col in matrix.columns if col != "Gene"]
        self._matrix = matrix.with_columns(
            pl.col("Gene").cast(pl.Utf8),
            *[pl.col(col).cast(pl.Float64) for col in sample_cols],
        ).unique(subset="Gene", keep="first", maintain_order=True)
        self._metadata = metadata.with_columns(
            [pl.col(col).cast(pl.Utf8) for col in ["sample", *grouping_columns]]
        )
        self.grouping_columns = list(grouping_columns)

        unknown = set(self._metadata["sample"].to_list()) - set(sample_cols)
        if unknown:
            logger.warning(f"{len(unknown)} samples in metadata have no expression values")

    @classmethod
    def from_files(
        cls,
        matrix_path: Path,
        metadata_path: Path,
        grouping_columns: Sequence[str] = ("region", "class"),
    ) -> "ExpressionAccessor":
        return cls(_read_table(matrix_path), _read_table(metadata_path), grouping_columns)

    def samples(self) -> List[str]:
        return [col for col in self._matrix.columns if col != "Gene"]

    def genes(self) -> List[str]:
        return self._matrix["Gene"].to_list()

    def select_samples(self, criterion: Set[str]) -> List[str]:
        """
        Samples whose grouping labels all belong to `criterion`.

        For the criterion {"DKD", "normal", "glomerulus"} this returns the glomerulus
        samples of class DKD or normal.
        """
        criterion = list(criterion)
        mask = pl.all_horizontal(
            [pl.col(col).is_in(criterion) for col in self.grouping_columns]
        )
        selected = self._metadata.filter(mask)["sample"].to_list()
        available = set(self.samples())
        return [s for s in selected if s in available]

    def values(self, genes: Iterable[str], samples: Sequence[str]) -> pl.DataFrame:
        genes = list(genes)
        return self._matrix.filter(pl.col("Gene").is_in(genes)).select(["Gene", *samples])

    def row_means(self, genes: Iterable[str], samples: Sequence[str]) -> pl.DataFrame:
        """
        Mean expression of each gene across `samples`.

        Returns:
            pl.DataFrame: Columns Gene and MeanExpression, one row per gene present in the matrix.
        """
        if not samples:
            raise ValueError("Cannot average over an empty sample set")
        return self.values(genes, samples).select(
            pl.col("Gene"),
            pl.mean_horizontal([pl.col(s) for s in samples]).alias("MeanExpression"),
        )
