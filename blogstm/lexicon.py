import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Mapping

import pandas as pd

logger = logging.getLogger(__name__)

# NRC emotion lexicon categories
EMOTIONS = ("anger", "anticipation", "disgust", "fear", "joy", "sadness", "surprise", "trust")
SENTIMENTS = ("negative", "positive")
CATEGORIES = EMOTIONS + SENTIMENTS


@dataclass(frozen=True)
class SentimentLexicon:
    categories: Mapping[str, FrozenSet[str]]

    def __post_init__(self):
        unknown = set(self.categories) - set(CATEGORIES)
        if unknown:
            raise ValueError(f"unknown lexicon categories: {sorted(unknown)}")

    def members(self, category: str) -> FrozenSet[str]:
        return self.categories.get(category, frozenset())

    def categories_of(self, term: str):
        return [c for c in CATEGORIES if term in self.members(c)]

    @property
    def terms(self) -> FrozenSet[str]:
        return frozenset().union(*self.categories.values()) if self.categories else frozenset()

    def mapped(self, fn: Callable[[str], str]) -> "SentimentLexicon":
        """Apply a term transform (e.g. the normalizer's stemmer) to every member."""
        return SentimentLexicon({c: frozenset(fn(t) for t in ts) for c, ts in self.categories.items()})

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "SentimentLexicon":
        return cls({c: frozenset(ts) for c, ts in mapping.items()})

    @classmethod
    def from_frame(cls, df: pd.DataFrame, word_col: str = "word",
                   category_col: str = "sentiment") -> "SentimentLexicon":
        """Long table, one (word, category) pair per row (tidytext layout)."""
        cats: Dict[str, set] = {c: set() for c in CATEGORIES}
        for word, cat in zip(df[word_col], df[category_col]):
            if cat in cats:
                cats[cat].add(str(word))
        return cls({c: frozenset(ts) for c, ts in cats.items()})

    @classmethod
    def from_nrc(cls, path: str) -> "SentimentLexicon":
        """NRC word-level file: word<TAB>category<TAB>0/1 per line."""
        df = pd.read_csv(path, sep="\t", header=None, names=["word", "sentiment", "flag"],
                         dtype={"word": str, "sentiment": str, "flag": int},
                         keep_default_na=False)
        lex = cls.from_frame(df[df["flag"] == 1])
        logger.info("loaded NRC lexicon: %d terms in %d categories", len(lex.terms), len(CATEGORIES))
        return lex
