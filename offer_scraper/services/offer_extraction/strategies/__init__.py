"""
Extraction strategies and the name registry used to pick them.
"""

from typing import Dict, Sequence, Type, Union

from .base import BaseExtractionStrategy, ExtractionStrategy
from .browser import HeadlessBrowserStrategy
from .chain import StrategyChain
from .direct import DirectFetchStrategy
from .proxy import RenderingProxyStrategy

STRATEGY_REGISTRY: Dict[str, Type[BaseExtractionStrategy]] = {
    DirectFetchStrategy.name: DirectFetchStrategy,
    HeadlessBrowserStrategy.name: HeadlessBrowserStrategy,
    RenderingProxyStrategy.name: RenderingProxyStrategy,
}

StrategySpec = Union[str, ExtractionStrategy]


def build_strategy(specs: Sequence[StrategySpec]) -> ExtractionStrategy:
    """Turn names and/or instances into one strategy, chaining when several."""
    strategies = []
    for spec in specs:
        if isinstance(spec, ExtractionStrategy):
            strategies.append(spec)
            continue
        try:
            strategies.append(STRATEGY_REGISTRY[spec.lower()]())
        except KeyError as exc:
            known = ", ".join(sorted(STRATEGY_REGISTRY))
            raise ValueError(f"Unknown strategy {spec!r} (known: {known})") from exc
    if not strategies:
        raise ValueError("At least one strategy is required")
    if len(strategies) == 1:
        return strategies[0]
    return StrategyChain(strategies)


__all__ = [
    "STRATEGY_REGISTRY",
    "BaseExtractionStrategy",
    "DirectFetchStrategy",
    "ExtractionStrategy",
    "HeadlessBrowserStrategy",
    "RenderingProxyStrategy",
    "StrategyChain",
    "build_strategy",
]
