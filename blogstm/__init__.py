# Structural topic model and sentiment analysis of organisational blog posts
# Laplace-approximate variational EM with covariate-dependent topic prevalence,
# spectral (anchor-word) initialisation, skip-gram embeddings and NRC lexicon scoring.

from .config import PipelineConfig, NormalizerConfig, DTMConfig, TopicModelConfig, EmbeddingConfig
from .data import Document, Event, read_documents, read_events
from .text import TextNormalizer
from .dtm import Vocabulary, DocumentTermMatrix, build_dtm
from .covariates import PrevalenceDesign
from .em import fit_topic_model
from .model import FittedTopicModel
from .selection import search_k
from .effects import estimate_effect
from .embedding import WordEmbedding, train_embedding, document_embeddings
from .lexicon import SentimentLexicon
from .sentiment import lexicon_scores, embedding_scores, aggregate_scores
from .pipeline import run_pipeline, write_artifacts
