"""
Navigation: how a learner moves through security items.

- bfs: ordered walk over the item list
- dfs: link traversal with backtracking
- manager: switches between the two on learner actions
"""

from src.navigation.bfs import BFSStrategy
from src.navigation.dfs import DFSStrategy
from src.navigation.graph import ItemGraph
from src.navigation.manager import StrategyManager, build_item_graph
from src.navigation.types import LearningContext, LearningItem, NavigationContext, SecurityItem

__all__ = [
    "BFSStrategy",
    "DFSStrategy",
    "ItemGraph",
    "StrategyManager",
    "build_item_graph",
    "LearningContext",
    "LearningItem",
    "NavigationContext",
    "SecurityItem",
]
