# src/rainier/workload/arguments.py
"""Binding map construction.

A binding map is a plain ``dict`` of placeholder name to text. Every function
here returns a new dict; the maps passed in are never modified, so a map
handed to a deeper recursion level or a sibling row stays as it was.
"""

from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Mapping, Optional
import logging

from ..core.codec import RowValueCodec
from ..core.connection import Row
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Values are text; None marks a NULL column taken from a row
BindingMap = Dict[str, Optional[str]]


def load_argument_list(path: Path) -> List[str]:
    """Read candidate values, one per line, skipping blank lines."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Error: cannot find file {path}")

    with open(path, 'r', encoding='utf-8') as f:
        values = [line.rstrip("\r\n") for line in f]
    values = [v for v in values if v.strip()]

    if not values:
        raise ConfigurationError(f"Argument file {path} contains no values")
    return values


def load_argument_lists(arg_files: Mapping[str, Path]) -> Dict[str, List[str]]:
    """Load every configured argument file, keyed by argument name."""
    lists = {}
    for name, path in arg_files.items():
        lists[name] = load_argument_list(path)
        logger.info(f"  {name} : {path} ({len(lists[name])} values)")
    return lists


class ArgumentResolver:
    """Merges static, list-sourced and row-derived arguments."""

    def __init__(self, codec: Optional[RowValueCodec] = None):
        self.codec = codec or RowValueCodec()

    def resolve(self,
                static_args: Mapping[str, str],
                list_sources: Mapping[str, List[str]],
                rng: random.Random) -> BindingMap:
        """Build the base binding map of one iteration.

        List sources are sampled in name order so that the values drawn for
        a seed do not depend on how the configuration was written. A
        list-sourced value replaces a static value of the same name.
        """
        bindings = dict(static_args)
        for name in sorted(list_sources):
            values = list_sources[name]
            bindings[name] = values[rng.randrange(len(values))]
        return bindings

    def merge(self, bindings: Mapping[str, Optional[str]], row: Row) -> BindingMap:
        """Return a copy of ``bindings`` overridden by the row's columns."""
        merged = dict(bindings)
        for column, value in row.items():
            merged[column] = self.codec.format(value)
        return merged
