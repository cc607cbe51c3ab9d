"""
Parser Registry.

Ordered collection of parser plugins. Registration order is significant:
it breaks ties when two plugins report the same match score.

Author: ML Engineering Team
"""

import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from ..text.normalizer import NormalizedInput
from ..utils.exceptions import PluginMatchError
from ..utils.logger import get_logger
from .base import MatchResult, ParserPlugin
from .column_table import ColumnTableParser
from .receipt import ReceiptParser
from .statement_line import StatementLineParser
from .wrapped_generic import WrappedGenericParser

logger = get_logger(__name__)

CANONICAL_SCALE = 100.0


@dataclass
class ParseCandidate:
    """
    One plugin's ranked opinion about one document.

    Attributes:
        plugin: The plugin itself
        match_score: Score on the canonical 0-100 scale
        reasons: Signals that contributed to the score
        rank: Registration position, used for stable ordering
    """
    plugin: ParserPlugin
    match_score: float
    reasons: List[str] = field(default_factory=list)
    rank: int = 0

    @property
    def plugin_id(self) -> str:
        return self.plugin.plugin_id

    @property
    def version(self) -> str:
        return self.plugin.version

    def to_dict(self) -> Dict[str, object]:
        return {
            'plugin_id': self.plugin_id,
            'version': self.version,
            'match_score': self.match_score,
            'reasons': list(self.reasons),
        }


def normalize_score(raw_score, score_scale: float) -> float:
    """
    Rescale a plugin score to 0-100 and clamp it.

    Non-numeric and non-finite scores become 0.
    """
    try:
        value = float(raw_score)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or not score_scale:
        return 0.0
    return max(0.0, min(CANONICAL_SCALE, value * (CANONICAL_SCALE / score_scale)))


class ParserRegistry:
    """
    Typed, ordered list of ParserPlugin instances.

    Example:
        >>> registry = ParserRegistry([ColumnTableParser(), WrappedGenericParser()])
        >>> ranked = registry.rank(NormalizedInput.from_raw(text))
        >>> ranked[0].plugin_id
        'column-table-v1'
    """

    def __init__(self, plugins: Optional[List[ParserPlugin]] = None, max_workers: int = 4) -> None:
        self._plugins: List[ParserPlugin] = []
        self.max_workers = max(1, int(max_workers))
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: ParserPlugin) -> None:
        """
        Append a plugin.

        Raises:
            TypeError: If `plugin` does not implement ParserPlugin.
            ValueError: If a plugin with the same id is already registered.
        """
        if not isinstance(plugin, ParserPlugin):
            raise TypeError(f"Expected ParserPlugin, got {type(plugin).__name__}")
        if any(p.plugin_id == plugin.plugin_id for p in self._plugins):
            raise ValueError(f"Parser already registered: {plugin.plugin_id}")
        self._plugins.append(plugin)
        logger.debug(f"Registered parser {plugin.plugin_id} ({plugin.version})")

    def unregister(self, plugin_id: str) -> None:
        self._plugins = [p for p in self._plugins if p.plugin_id != plugin_id]

    @property
    def plugins(self) -> Tuple[ParserPlugin, ...]:
        return tuple(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)

    def __iter__(self) -> Iterator[ParserPlugin]:
        return iter(tuple(self._plugins))

    def _score(self, plugin: ParserPlugin, document: NormalizedInput) -> Tuple[float, List[str]]:
        try:
            result = plugin.match(document)
            if not isinstance(result, MatchResult):
                raise PluginMatchError(plugin.plugin_id, f"match returned {type(result).__name__}")
        except Exception as e:
            logger.warning(f"Parser {plugin.plugin_id} failed to match: {e}")
            reason = e.details.get('reason') if isinstance(e, PluginMatchError) else str(e)
            return 0.0, [f"match_error:{reason}"]

        return normalize_score(result.score, plugin.score_scale), list(result.reasons or [])

    def rank(self, document: NormalizedInput) -> List[ParseCandidate]:
        """
        Score every plugin against `document` and sort by score.

        Matching runs on a thread pool; the sort is stable, so plugins with
        equal scores keep registration order.

        Args:
            document: Normalized input shared by all plugins.

        Returns:
            Candidates, best first.
        """
        plugins = list(self._plugins)
        candidates: List[Optional[ParseCandidate]] = [None] * len(plugins)

        if plugins:
            workers = min(self.max_workers, len(plugins))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                future_to_rank = {
                    executor.submit(self._score, plugin, document): rank
                    for rank, plugin in enumerate(plugins)
                }
                for future in as_completed(future_to_rank):
                    rank = future_to_rank[future]
                    score, reasons = future.result()
                    candidates[rank] = ParseCandidate(
                        plugin=plugins[rank],
                        match_score=score,
                        reasons=reasons,
                        rank=rank,
                    )

        ranked = sorted(candidates, key=lambda c: -c.match_score)
        logger.debug(
            "Parser ranking: " + ", ".join(f"{c.plugin_id}={c.match_score:.0f}" for c in ranked)
        )
        return ranked


def default_plugins(max_items: int = 400) -> List[ParserPlugin]:
    """The general-purpose plugins, in tie-breaking order."""
    return [
        ColumnTableParser(max_items=max_items),
        WrappedGenericParser(max_items=max_items),
        ReceiptParser(),
        StatementLineParser(),
    ]
