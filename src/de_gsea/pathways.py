from pathlib import Path
from typing import Dict, Iterable, Set

from loguru import logger


def read_gmt(path: Path) -> Dict[str, Set[str]]:
    """
    Read gene sets from a GMT file.

    Each line holds a set name, a description and the member identifiers, tab separated.
    """
    gene_sets = {}
    with open(path, 'r') as f:
        for line in f:
            fields = line.rstrip("\n\r").split("\t")
            if len(fields) < 3 or not fields[0]:
                continue
            gene_sets[fields[0]] = {g for g in fields[2:] if g}
    logger.info(f"Read {len(gene_sets)} gene sets from {path}")
    return gene_sets


def write_gmt(gene_sets: Dict[str, Set[str]], path: Path) -> Path:
    with open(path, 'w') as f:
        for name, genes in gene_sets.items():
            f.write("\t".join([name, name, *sorted(genes)]) + "\n")
    logger.info(f"Gene sets saved to {path}")
    return path


def restrict_to_universe(
    gene_sets: Dict[str, Set[str]],
    universe: Iterable[str],
    min_size: int,
    max_size: int,
) -> Dict[str, Set[str]]:
    """
    Intersect every set with the ranked universe and keep those whose restricted
    size lies within [min_size, max_size].
    """
    universe = set(universe)
    restricted = {}
    for name, genes in gene_sets.items():
        members = genes & universe
        if members and min_size <= len(members) <= max_size:
            restricted[name] = members
    logger.debug(
        f"{len(restricted)} of {len(gene_sets)} gene sets within size bounds [{min_size}, {max_size}]"
    )
    return restricted
