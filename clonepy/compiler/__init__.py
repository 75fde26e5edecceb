"""Per-type copy strategies and their generation."""

from clonepy.compiler.copy_strategy import CopyStrategy
from clonepy.compiler.strategy_compiler import StrategyCompiler
