from .classifiers import Category, ClassificationRules, build_predicates, classify
from .sampler import FirstN, SeededShuffle, bound, make_strategy

__all__ = [
    "Category", "ClassificationRules", "build_predicates", "classify",
    "FirstN", "SeededShuffle", "bound", "make_strategy",
]
