import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import sparse

from .config import PipelineConfig
from .covariates import PrevalenceDesign
from .data import Document, Event, documents_frame
from .dtm import DocumentTermMatrix, build_dtm
from .effects import estimate_effect
from .em import fit_topic_model
from .embedding import WordEmbedding, document_embeddings, train_embedding
from .lexicon import SentimentLexicon
from .model import FittedTopicModel
from .selection import search_k
from .sentiment import (BUCKETS, aggregate_scores, category_vectors, corpus_embedding_scores,
                        embedding_scores, lexicon_scores, score_keys)
from .text import NormalizedCorpus, TextNormalizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    config: PipelineConfig
    corpus: NormalizedCorpus
    dtm: DocumentTermMatrix
    design: PrevalenceDesign
    model: FittedTopicModel
    embedding: WordEmbedding
    doc_vectors: np.ndarray
    selection: Optional[pd.DataFrame] = None
    effects: Optional[pd.DataFrame] = None
    events: Optional[pd.DataFrame] = None
    lexicon_scores: Optional[pd.DataFrame] = None
    embedding_scores: Optional[pd.DataFrame] = None
    corpus_scores: Optional[pd.DataFrame] = None
    bucket_scores: Dict[str, pd.DataFrame] = field(default_factory=dict)


def prepare(documents: Sequence[Document], config: PipelineConfig):
    """Normalizer, DTM and prevalence design; the deterministic front of the pipeline."""
    normalizer = TextNormalizer(config.normalizer)
    corpus = normalizer.normalize(documents)
    dtm = build_dtm(corpus, min_df=config.dtm.min_doc_freq)
    design = PrevalenceDesign.from_frame(documents_frame(corpus.source_documents),
                                         config.topic_model.prevalence_formula)
    return normalizer, corpus, dtm, design


def topic_effects(model: FittedTopicModel, covariate: str = "day_of_year", n_points: int = 50,
                  nsims: int = 25) -> pd.DataFrame:
    """Prevalence curve of every topic against one covariate, stacked."""
    return pd.concat([estimate_effect(model, k, covariate, n_points=n_points, nsims=nsims).to_frame()
                      for k in range(model.K)], ignore_index=True)


def events_table(events: Sequence[Event]) -> pd.DataFrame:
    return pd.DataFrame({"date": pd.to_datetime([e.date for e in events]),
                         "event": [e.text for e in events]})


def run_pipeline(documents: Sequence[Document], config: Optional[PipelineConfig] = None,
                 lexicon: Optional[SentimentLexicon] = None, search: bool = False,
                 n_jobs: int = 1, events: Optional[Sequence[Event]] = None) -> PipelineResult:
    config = config or PipelineConfig()
    logger.info("=== pipeline start: %d documents ===", len(documents))
    normalizer, corpus, dtm, design = prepare(documents, config)

    selection = None
    if search:
        selection = search_k(dtm, design, config.topic_model.candidate_k, config.topic_model, n_jobs=n_jobs)
        logger.info("model selection diagnostics:\n%s", selection.to_string(index=False))

    model = fit_topic_model(dtm, design, config.topic_model.K, config.topic_model)

    embedding = train_embedding(corpus.token_lists, config.embedding)
    doc_vectors = document_embeddings(embedding, corpus.token_lists, corpus.doc_ids)

    result = dict(config=config, corpus=corpus, dtm=dtm, design=design, model=model,
                  embedding=embedding, doc_vectors=doc_vectors, selection=selection,
                  effects=topic_effects(model),
                  events=events_table(events) if events is not None else None)
    if lexicon is not None:
        # vocabulary terms are stemmed, so the lexicon is reduced the same way
        lex = lexicon.mapped(normalizer.stem_term)
        docs = corpus.source_documents
        keys = score_keys(corpus.doc_ids, [d.organisation for d in docs], [d.date for d in docs],
                          model.dominant_topics())
        lex_scores = lexicon_scores(dtm, lex)
        cats = category_vectors(embedding, lex)
        emb_scores = embedding_scores(doc_vectors, cats, index=corpus.doc_ids)
        buckets = {}
        for by in BUCKETS:
            buckets[f"lexicon_by_{by}"] = aggregate_scores(lex_scores, keys, by)
            buckets[f"embedding_by_{by}"] = aggregate_scores(emb_scores, keys, by)
        result.update(lexicon_scores=lex_scores, embedding_scores=emb_scores,
                      corpus_scores=corpus_embedding_scores(doc_vectors, cats),
                      bucket_scores=buckets)
    logger.info("=== pipeline done ===")
    return PipelineResult(**result)


def _write_frame(df: pd.DataFrame, path: str, index: bool = False):
    df.to_csv(path, index=index)
    logger.info("wrote %s", path)


def write_artifacts(result: PipelineResult, out_dir: str) -> List[str]:
    os.makedirs(out_dir, exist_ok=True)
    written = []

    def path(name):
        p = os.path.join(out_dir, name)
        written.append(p)
        return p

    dtm = result.dtm
    _write_frame(dtm.to_frame(), path("vocabulary.csv"))
    sparse.save_npz(path("dtm_counts.npz"), dtm.counts)
    sparse.save_npz(path("dtm_tfidf.npz"), dtm.tfidf())
    sparse.save_npz(path("dtm_proportions.npz"), dtm.proportions())
    pd.Series(dtm.doc_ids, name="doc_id").to_csv(path("dtm_rows.csv"), index=False)

    model = result.model
    _write_frame(model.doc_topic_frame(), path("doc_topics.csv"))
    _write_frame(model.topic_term_frame(12), path("topic_term_probs.csv"))
    topic_terms = {f"Topic_{k}": {"prob": model.top_terms(k, 12), "frex": model.frex_terms(k, 12)}
                   for k in range(model.K)}
    with open(path("topic_terms.json"), "w", encoding="utf-8") as f:
        json.dump(topic_terms, f, ensure_ascii=False, indent=2)
    if result.selection is not None:
        _write_frame(result.selection, path("model_selection.csv"))

    _write_frame(result.effects, path("topic_effects.csv"))
    if result.events is not None:
        _write_frame(result.events, path("events.csv"))

    _write_frame(result.embedding.to_frame(), path("embeddings.csv"))
    if result.lexicon_scores is not None:
        _write_frame(result.lexicon_scores, path("lexicon_scores.csv"), index=True)
        _write_frame(result.embedding_scores, path("embedding_scores.csv"), index=True)
        _write_frame(result.corpus_scores, path("corpus_embedding_scores.csv"), index=True)
        for name, table in result.bucket_scores.items():
            _write_frame(table, path(f"{name}.csv"), index=True)

    with open(path("run_config.json"), "w", encoding="utf-8") as f:
        json.dump(result.config.to_dict(), f, ensure_ascii=False, indent=2)
    return written
