import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

# -------------------------- default parameters --------------------------
# Boilerplate appended to most articles of the crawled blogs
DEFAULT_BOILERPLATE = [
    r"disclaimer\b.*?all rights reserved\.?",
]
MIN_DOC_FREQ = 5                  # terms in fewer documents are dropped from the vocabulary
NGRAM_RANGE = (1, 2)              # unigrams and bigrams
CANDIDATE_K = [4, 5, 6, 7, 8, 9, 10]
DEFAULT_K = 8
PREVALENCE_FORMULA = "~ C(organisation) + bs(day_of_year, df=5)"
EMBEDDING_DIM = 100
EMBEDDING_WINDOW = 5
EMBEDDING_MIN_COUNT = 5
EMBEDDING_EPOCHS = 10
RANDOM_SEED = 42


@dataclass
class NormalizerConfig:
    boilerplate_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_BOILERPLATE))
    strip_boilerplate: bool = True
    lowercase: bool = True
    strip_urls: bool = True
    strip_numbers: bool = True
    strip_punctuation: bool = True
    remove_stopwords: bool = True
    # None -> nltk english stopword list
    stopwords: Optional[List[str]] = None
    stem: bool = True
    stem_language: str = "english"
    ngram_range: Tuple[int, int] = NGRAM_RANGE
    min_token_length: int = 1


@dataclass
class DTMConfig:
    min_doc_freq: int = MIN_DOC_FREQ


@dataclass
class TopicModelConfig:
    K: int = DEFAULT_K
    candidate_k: List[int] = field(default_factory=lambda: list(CANDIDATE_K))
    prevalence_formula: str = PREVALENCE_FORMULA
    init: str = "spectral"        # spectral | nmf | random
    max_em_iter: int = 50
    tol: float = 1e-5
    estep_max_iter: int = 200
    heldout_proportion: float = 0.1
    heldout_fraction_words: float = 0.5
    coherence_top_n: int = 10
    seed: int = RANDOM_SEED


@dataclass
class EmbeddingConfig:
    dimension: int = EMBEDDING_DIM
    window: int = EMBEDDING_WINDOW
    min_count: int = EMBEDDING_MIN_COUNT
    epochs: int = EMBEDDING_EPOCHS
    negative: int = 5
    seed: int = RANDOM_SEED


@dataclass
class PipelineConfig:
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    dtm: DTMConfig = field(default_factory=DTMConfig)
    topic_model: TopicModelConfig = field(default_factory=TopicModelConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    seed: int = RANDOM_SEED

    def __post_init__(self):
        # one seed threads through every stochastic stage
        self.topic_model.seed = self.seed
        self.embedding.seed = self.seed

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PipelineConfig":
        """Build a config from nested sections.

        A seed given only inside ``topic_model`` or ``embedding`` becomes the
        pipeline seed; seeds that disagree raise ValueError.
        """
        raw = dict(raw)
        normalizer = dict(raw.pop("normalizer", {}))
        if "ngram_range" in normalizer:
            normalizer["ngram_range"] = tuple(normalizer["ngram_range"])
        topic_model = dict(raw.pop("topic_model", {}))
        embedding = dict(raw.pop("embedding", {}))
        seeds = {name: section["seed"] for name, section in
                 (("topic_model", topic_model), ("embedding", embedding)) if "seed" in section}
        if "seed" in raw:
            seeds["seed"] = raw["seed"]
        if len(set(seeds.values())) > 1:
            raise ValueError(f"conflicting seeds in config: {seeds}")
        if seeds:
            raw["seed"] = next(iter(seeds.values()))
        return cls(
            normalizer=NormalizerConfig(**normalizer),
            dtm=DTMConfig(**raw.pop("dtm", {})),
            topic_model=TopicModelConfig(**topic_model),
            embedding=EmbeddingConfig(**embedding),
            **raw,
        )

    @classmethod
    def from_json(cls, path: str) -> "PipelineConfig":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
