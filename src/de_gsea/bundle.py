import io
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict

import polars as pl
import yaml
from loguru import logger
from pyexcelerate import Workbook

from de_gsea.expression import ExpressionAccessor

TABLE_SUFFIXES = (".tsv", ".csv", ".parquet")


def _read_bytes(name: str, data: bytes) -> pl.DataFrame:
    if name.endswith(".parquet"):
        return pl.read_parquet(io.BytesIO(data))
    separator = "," if name.endswith(".csv") else "\t"
    return pl.read_csv(io.BytesIO(data), separator=separator)


def _stem(name: str) -> str:
    return Path(name).stem


@dataclass
class InputBundle:
    """
    Pre-computed DE tables plus the expression matrix and sample metadata.

    On disk this is a zip archive (or a directory) holding `DE_*` tables,
    an `expression` matrix and a `samples` metadata table, as tsv, csv or parquet.
    """
    de_tables: Dict[str, pl.DataFrame]
    expression: pl.DataFrame
    samples: pl.DataFrame

    @classmethod
    def _from_files(cls, files: Dict[str, bytes], source: Path) -> "InputBundle":
        tables = {name: data for name, data in files.items() if name.endswith(TABLE_SUFFIXES)}
        de_names = sorted(n for n in tables if _stem(n).startswith("DE_"))
        if not de_names:
            raise ValueError(f"No DE_* table found in {source}")

        def single(stem: str) -> pl.DataFrame:
            matches = [n for n in tables if _stem(n) == stem]
            if not matches:
                raise ValueError(f"No '{stem}' table found in {source}")
            return _read_bytes(matches[0], tables[matches[0]])

        de_tables = {_stem(n): _read_bytes(n, tables[n]) for n in de_names}
        logger.info(f"Read {len(de_tables)} DE tables from {source}: {list(de_tables)}")
        return cls(de_tables=de_tables, expression=single("expression"), samples=single("samples"))

    @classmethod
    def from_zip(cls, zip_path: Path) -> "InputBundle":
        with zipfile.ZipFile(zip_path, 'r') as z:
            files = {Path(name).name: z.read(name) for name in z.namelist() if not name.endswith("/")}
        return cls._from_files(files, Path(zip_path))

    @classmethod
    def from_dir(cls, directory: Path) -> "InputBundle":
        directory = Path(directory)
        files = {p.name: p.read_bytes() for p in directory.iterdir() if p.is_file()}
        return cls._from_files(files, directory)

    @classmethod
    def read(cls, path: Path) -> "InputBundle":
        path = Path(path)
        return cls.from_dir(path) if path.is_dir() else cls.from_zip(path)

    def accessor(self, grouping_columns=("region", "class")) -> ExpressionAccessor:
        return ExpressionAccessor(self.expression, self.samples, grouping_columns)


@dataclass
class OutputBundle:
    de_table: pl.DataFrame
    enrichment_table: pl.DataFrame
    curated_table: pl.DataFrame
    report: dict = field(default_factory=dict)

    table_names = ("de_table", "enrichment_table", "curated_table")

    def tables(self) -> Dict[str, pl.DataFrame]:
        return {name: getattr(self, name) for name in self.table_names}

    def manifest(self) -> dict:
        return {
            "created": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "tables": {name: list(df.shape) for name, df in self.tables().items()},
            "report": self.report,
        }

    def write(self, path: Path) -> Path:
        """Write the three tables as parquet plus a yaml manifest into a zip archive."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED) as z:
            for name, df in self.tables().items():
                buffer = io.BytesIO()
                df.write_parquet(buffer)
                z.writestr(f"{name}.parquet", buffer.getvalue())
            z.writestr("manifest.yml", yaml.safe_dump(self.manifest(), sort_keys=False))
        logger.info(f"Wrote output bundle {path}")
        return path

    @classmethod
    def read(cls, path: Path) -> "OutputBundle":
        with zipfile.ZipFile(path, 'r') as z:
            tables = {
                name: pl.read_parquet(io.BytesIO(z.read(f"{name}.parquet")))
                for name in cls.table_names
            }
            manifest = yaml.safe_load(z.read("manifest.yml")) or {}
        return cls(report=manifest.get("report", {}), **tables)


def write_xlsx(dataframes: Dict[str, pl.DataFrame], filename: Path) -> Path:
    wb = Workbook()
    for sheet_name, dataframe in dataframes.items():
        logger.info(f"Writing {sheet_name} with shape {dataframe.shape}")
        list_cols = [name for name, dtype in dataframe.schema.items() if isinstance(dtype, pl.List)]
        if list_cols:
            dataframe = dataframe.with_columns(pl.col(list_cols).list.join(","))
        rows = [dataframe.columns]
        for row in dataframe.iter_rows(named=False):
            rows.append(list(row))
        wb.new_sheet(sheet_name, data=rows)
    wb.save(str(filename))
    logger.info(f"Wrote {filename}")
    return Path(filename)
