from datetime import date, timedelta

import numpy as np
import pytest

from blogstm.config import DTMConfig, EmbeddingConfig, NormalizerConfig, PipelineConfig, TopicModelConfig
from blogstm.covariates import PrevalenceDesign
from blogstm.data import Document, documents_frame
from blogstm.dtm import build_dtm
from blogstm.em import fit_topic_model
from blogstm.text import TextNormalizer

# explicit list so the tests never download nltk data
STOPWORDS = ["the", "a", "of", "and", "to", "in", "is", "for", "on", "with", "we", "our", "this"]

ASYLUM = ["asylum", "refugee", "border", "detention", "visa", "protection", "claim", "tribunal"]
CLIMATE = ["climate", "emission", "carbon", "forest", "energy", "warming", "coal", "solar"]
ORGS = ["amnesty", "greenpeace", "oxfam"]


def make_documents(n=40, seed=0):
    """Two themes; even documents lean on asylum words, odd ones on climate words."""
    rng = np.random.default_rng(seed)
    start = date(2019, 1, 5)
    docs = []
    for i in range(n):
        lean = 0.85 if i % 2 == 0 else 0.15
        words = []
        for _ in range(30):
            pool = ASYLUM if rng.random() < lean else CLIMATE
            words.append(pool[rng.integers(len(pool))])
        text = "This is our update. " + " ".join(words) + " and the work with our partners."
        docs.append(Document(doc_id=f"d{i:02d}", organisation=ORGS[i % 3], title=f"post {i}",
                             date=start + timedelta(days=9 * i), text=text))
    return docs


def make_config(**topic_overrides):
    topic = dict(K=2, candidate_k=[2, 3], max_em_iter=5, estep_max_iter=50)
    topic.update(topic_overrides)
    return PipelineConfig(
        normalizer=NormalizerConfig(stopwords=STOPWORDS, stem=False, ngram_range=(1, 1)),
        dtm=DTMConfig(min_doc_freq=2),
        topic_model=TopicModelConfig(**topic),
        embedding=EmbeddingConfig(dimension=10, min_count=1, epochs=2),
        seed=7,
    )


@pytest.fixture
def documents():
    return make_documents()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def corpus(documents, config):
    return TextNormalizer(config.normalizer).normalize(documents)


@pytest.fixture
def dtm(corpus, config):
    return build_dtm(corpus, min_df=config.dtm.min_doc_freq)


@pytest.fixture
def design(corpus, config):
    return PrevalenceDesign.from_frame(documents_frame(corpus.source_documents),
                                       config.topic_model.prevalence_formula)


@pytest.fixture(scope="session")
def fitted():
    config = make_config()
    corpus = TextNormalizer(config.normalizer).normalize(make_documents())
    dtm = build_dtm(corpus, min_df=config.dtm.min_doc_freq)
    design = PrevalenceDesign.from_frame(documents_frame(corpus.source_documents),
                                         config.topic_model.prevalence_formula)
    return fit_topic_model(dtm, design, config.topic_model.K, config.topic_model)
