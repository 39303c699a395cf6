from pathlib import Path
from typing import Dict, Iterable, Set, Tuple

import polars as pl
import requests
from loguru import logger

from de_gsea.errors import UnmappedIdentifier


class IdentifierMapper:
    """
    Bidirectional translation between gene symbols and pathway-database identifiers.

    Subclasses implement `_resolve`, a bulk lookup returning a partial mapping.
    Results are cached per direction, so every identifier is resolved at most once
    and unresolved identifiers are remembered as such.
    """

    def __init__(self, symbol_space: str = "symbol", pathway_space: str = "entrez"):
        self.symbol_space = symbol_space
        self.pathway_space = pathway_space
        self._cache: Dict[Tuple[str, str], Dict[str, str]] = {}
        self._unresolved: Dict[Tuple[str, str], Set[str]] = {}

    def _resolve(self, ids: Set[str], from_space: str, to_space: str) -> Dict[str, str]:
        raise NotImplementedError

    def map(self, ids: Iterable[str], from_space: str, to_space: str) -> Dict[str, str]:
        """
        Translate `ids` from one identifier space to another.

        Returns:
            dict: Partial mapping; identifiers without a translation are absent.
        """
        ids = {i for i in ids if i is not None}
        direction = (from_space, to_space)
        cache = self._cache.setdefault(direction, {})
        unresolved = self._unresolved.setdefault(direction, set())

        pending = ids - cache.keys() - unresolved
        if pending:
            logger.debug(f"Resolving {len(pending)} identifiers {from_space} -> {to_space}")
            resolved = self._resolve(pending, from_space, to_space)
            for key in pending:
                if key in resolved and resolved[key] is not None:
                    cache[key] = resolved[key]
                else:
                    unresolved.add(key)

        return {key: cache[key] for key in ids if key in cache}

    def to_pathway_ids(self, symbols: Iterable[str]) -> Dict[str, str]:
        return self.map(symbols, self.symbol_space, self.pathway_space)

    def to_symbols(self, ids: Iterable[str]) -> Dict[str, str]:
        return self.map(ids, self.pathway_space, self.symbol_space)

    def lookup(self, identifier: str, from_space: str, to_space: str) -> str:
        mapped = self.map([identifier], from_space, to_space)
        if identifier not in mapped:
            raise UnmappedIdentifier(identifier, from_space, to_space)
        return mapped[identifier]


class TableIdentifierMapper(IdentifierMapper):
    """
    Mapper backed by an annotation table with one column per identifier space,
    e.g. columns `symbol` and `entrez`.
    """

    def __init__(self, table: pl.DataFrame, symbol_space: str = "symbol", pathway_space: str = "entrez"):
        super().__init__(symbol_space, pathway_space)
        missing = [col for col in (symbol_space, pathway_space) if col not in table.columns]
        if missing:
            raise ValueError(f"Annotation table is missing columns: {', '.join(missing)}")
        self.table = table.select(
            pl.col(symbol_space).cast(pl.Utf8), pl.col(pathway_space).cast(pl.Utf8)
        ).drop_nulls()

    @classmethod
    def from_file(cls, path: Path, symbol_space: str = "symbol", pathway_space: str = "entrez") -> "TableIdentifierMapper":
        path = Path(path)
        if path.suffix == ".parquet":
            table = pl.read_parquet(path)
        else:
            separator = "," if path.suffix == ".csv" else "\t"
            table = pl.read_csv(path, separator=separator, infer_schema_length=0)
        logger.info(f"Loaded {table.height} identifier pairs from {path}")
        return cls(table, symbol_space, pathway_space)

    def _resolve(self, ids: Set[str], from_space: str, to_space: str) -> Dict[str, str]:
        # first occurrence wins for keys that appear more than once
        pairs = (
            self.table.filter(pl.col(from_space).is_in(list(ids)))
            .unique(subset=[from_space], keep="first", maintain_order=True)
        )
        return dict(zip(pairs[from_space].to_list(), pairs[to_space].to_list()))


class StringIdentifierMapper(IdentifierMapper):
    """
    Mapper backed by the STRING-db `get_string_ids` endpoint.

    Gene symbols are resolved to STRING identifiers; the reverse direction uses the
    preferred names returned by STRING.
    """

    url = "https://version-12-0.string-db.org/api/json/get_string_ids"

    def __init__(self, species: int = 9606, caller_identity: str = "de_gsea", timeout: int = 60):
        super().__init__(symbol_space="symbol", pathway_space="string")
        self.species = species
        self.caller_identity = caller_identity
        self.timeout = timeout

    def _fetch(self, ids: Set[str]) -> list:
        params = {
            "identifiers": "\r".join(sorted(ids)),
            "species": self.species,
            "limit": 1,
            "echo_query": 1,
            "caller_identity": self.caller_identity,
        }
        logger.info(f"Fetching STRING ids for {len(ids)} identifiers")
        resp = requests.post(self.url, data=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"Unexpected response from STRING-db: {data}")
        return data

    def _resolve(self, ids: Set[str], from_space: str, to_space: str) -> Dict[str, str]:
        forward = (self.symbol_space, self.pathway_space)
        backward = (self.pathway_space, self.symbol_space)
        if (from_space, to_space) not in (forward, backward):
            raise ValueError(f"Unsupported direction {from_space} -> {to_space}")

        result = {}
        for entry in self._fetch(ids):
            query = entry.get("queryItem")
            string_id = entry.get("stringId")
            name = entry.get("preferredName")
            if not string_id or not name:
                continue
            # remember the opposite direction so later reverse lookups need no request
            self._cache.setdefault(backward, {}).setdefault(string_id, name)
            if (from_space, to_space) == forward:
                result[query] = string_id
            else:
                result[query] = name
        return result
