from enum import Enum
from typing import Dict, List, Optional, Set

import polars as pl
from loguru import logger

from de_gsea.errors import SelectionError


class SelectionState(Enum):
    EMPTY = "empty"
    TEST_SELECTED = "test_selected"
    SUBSET_SELECTED = "subset_selected"
    PATHWAY_SELECTED = "pathway_selected"


class SelectionGraph:
    """
    Cascading selection of test (contrast), subset and pathway.

    Every selection event recomputes the choice set of the next axis from the
    tables and clears everything downstream, so a choice set never refers to a
    combination without data. Derived views are cached until the next event.
    The tables are only read, never modified.
    """

    def __init__(self, de_table: pl.DataFrame, curated_table: pl.DataFrame):
        self._de = de_table
        self._curated = curated_table
        self.test_choices: List[str] = (
            de_table["Contrast"].unique(maintain_order=True).to_list()
        )
        self.subset_choices: List[str] = []
        self.pathway_choices: List[str] = []
        self.test: Optional[str] = None
        self.subset: Optional[str] = None
        self.pathway: Optional[str] = None
        self._views: Dict[str, object] = {}

    @property
    def state(self) -> SelectionState:
        if self.pathway is not None:
            return SelectionState.PATHWAY_SELECTED
        if self.subset is not None:
            return SelectionState.SUBSET_SELECTED
        if self.test is not None:
            return SelectionState.TEST_SELECTED
        return SelectionState.EMPTY

    def select_test(self, test: str) -> List[str]:
        """Select a contrast; returns the new subset choices."""
        if test not in self.test_choices:
            raise SelectionError(f"Unknown test '{test}'")
        self.test = test
        self.subset = None
        self.pathway = None
        self.pathway_choices = []
        self.subset_choices = (
            self._de.filter(pl.col("Contrast") == test)["Subset"]
            .unique(maintain_order=True)
            .to_list()
        )
        self._views.clear()
        logger.debug(f"Selected test {test}: {len(self.subset_choices)} subsets")
        return self.subset_choices

    def select_subset(self, subset: str) -> List[str]:
        """Select a subset of the current test; returns the new pathway choices."""
        if self.test is None:
            raise SelectionError("Select a test before selecting a subset")
        if subset not in self.subset_choices:
            raise SelectionError(f"Subset '{subset}' has no data for test '{self.test}'")
        self.subset = subset
        self.pathway = None
        self.pathway_choices = (
            self._pair(self._curated)["pathway"].unique(maintain_order=True).to_list()
        )
        self._views.clear()
        logger.debug(f"Selected subset {subset}: {len(self.pathway_choices)} pathways")
        return self.pathway_choices

    def select_pathway(self, pathway: str) -> None:
        if self.test is None or self.subset is None:
            raise SelectionError("Select a test and a subset before selecting a pathway")
        if pathway not in self.pathway_choices:
            raise SelectionError(
                f"Pathway '{pathway}' is not curated for {self.test} / {self.subset}"
            )
        self.pathway = pathway
        self._views.clear()

    def _pair(self, table: pl.DataFrame) -> pl.DataFrame:
        return table.filter(
            (pl.col("Contrast") == self.test) & (pl.col("Subset") == self.subset)
        )

    def _require_pair(self) -> None:
        if self.test is None or self.subset is None:
            raise SelectionError("A test and a subset must be selected")

    def derived_de_view(self) -> pl.DataFrame:
        """DE rows of the selected test and subset."""
        self._require_pair()
        if "de" not in self._views:
            self._views["de"] = self._pair(self._de)
        return self._views["de"]

    def derived_pathway_gene_set(self) -> Set[str]:
        """Leading-edge gene symbols of the selected pathway, empty without one."""
        if self.pathway is None:
            return set()
        if "genes" not in self._views:
            edges = self._pair(self._curated).filter(pl.col("pathway") == self.pathway)["leadingEdge"]
            self._views["genes"] = {
                gene for edge in edges.drop_nulls().to_list() for gene in edge.split(",") if gene
            }
        return self._views["genes"]

    def volcano_view(self) -> pl.DataFrame:
        genes = sorted(self.derived_pathway_gene_set())
        return self.derived_de_view().select(
            "Gene",
            "Estimate",
            "FDR",
            (-pl.col("FDR").log10()).alias("negLog10FDR"),
            pl.col("Gene").is_in(genes).alias("inPathway"),
        )

    def mean_expression_view(self) -> pl.DataFrame:
        genes = sorted(self.derived_pathway_gene_set())
        return self.derived_de_view().select(
            "Gene",
            "MeanExpression",
            "Estimate",
            pl.col("Gene").is_in(genes).alias("inPathway"),
        )

    def pathway_score_view(self) -> pl.DataFrame:
        self._require_pair()
        return self._pair(self._curated).select(
            "pathway",
            "NES",
            "padj",
            (-pl.col("padj").log10()).alias("negLog10padj"),
            (pl.col("pathway") == (self.pathway or "")).alias("selected"),
        )
