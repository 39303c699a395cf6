class DEGSEAError(Exception):
    """Base class for all errors raised by de_gsea."""


class SchemaError(DEGSEAError, ValueError):
    """Input table is malformed or empty. Fatal for the whole run."""


class SelectionError(DEGSEAError, ValueError):
    """A selection event is not allowed in the current selection state."""


class EmptySampleSet(DEGSEAError):
    def __init__(self, contrast: str, subset: str):
        self.contrast = contrast
        self.subset = subset
        super().__init__(
            f"No samples match contrast '{contrast}' within subset '{subset}'"
        )


class UnmappedIdentifier(DEGSEAError, KeyError):
    def __init__(self, identifier: str, from_space: str, to_space: str):
        self.identifier = identifier
        self.from_space = from_space
        self.to_space = to_space
        super().__init__(identifier)

    def __str__(self) -> str:
        return f"No {self.to_space} identifier for {self.from_space} '{self.identifier}'"


class UndefinedEnrichmentResult(DEGSEAError):
    def __init__(self, contrast: str, subset: str, count: int):
        self.contrast = contrast
        self.subset = subset
        self.count = count
        super().__init__(
            f"{count} pathway(s) without p-value dropped for {contrast} / {subset}"
        )


class InsufficientRows(DEGSEAError):
    def __init__(self, contrast: str, subset: str, available: int, requested: int):
        self.contrast = contrast
        self.subset = subset
        self.available = available
        self.requested = requested
        super().__init__(
            f"{contrast} / {subset}: only {available} enrichment rows, "
            f"{requested} requested; keeping all of them"
        )


class OracleFailure(DEGSEAError):
    def __init__(self, contrast: str, subset: str, cause: Exception):
        self.contrast = contrast
        self.subset = subset
        self.cause = cause
        super().__init__(f"External lookup failed for {contrast} / {subset}: {cause}")
