import re
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from nltk.stem.snowball import SnowballStemmer
from nltk.util import ngrams

from .config import NormalizerConfig
from .data import Document
from .errors import EmptyDocumentError

logger = logging.getLogger(__name__)

URL_RE = re.compile(r"https?://\S+|www\.\S+")
NUMBER_RE = re.compile(r"\d+")
# punctuation and symbols; \w keeps accented letters
SYMBOL_RE = re.compile(r"[^\w\s]|_")
SPACE_RE = re.compile(r"\s+")


# NLTK resources are downloaded lazily to avoid import-time failures
def _ensure_nltk():
    import nltk
    try:
        nltk.data.find('corpora/stopwords')
    except LookupError:
        nltk.download('stopwords', quiet=True)


def english_stopwords(language: str = "english") -> List[str]:
    _ensure_nltk()
    from nltk.corpus import stopwords
    return stopwords.words(language)


@dataclass(frozen=True)
class NormalizedDocument:
    document: Document
    tokens: Tuple[str, ...]   # cleaned unigrams in text order
    terms: Tuple[str, ...]    # unigrams followed by higher n-grams

    @property
    def doc_id(self) -> str:
        return self.document.doc_id


@dataclass(frozen=True)
class NormalizedCorpus:
    documents: Tuple[NormalizedDocument, ...]
    dropped: Tuple[str, ...]  # ids removed because nothing survived cleaning

    def __len__(self) -> int:
        return len(self.documents)

    @property
    def doc_ids(self) -> List[str]:
        return [d.doc_id for d in self.documents]

    @property
    def term_lists(self) -> List[Tuple[str, ...]]:
        return [d.terms for d in self.documents]

    @property
    def token_lists(self) -> List[Tuple[str, ...]]:
        return [d.tokens for d in self.documents]

    @property
    def source_documents(self) -> List[Document]:
        return [d.document for d in self.documents]


class TextNormalizer:
    def __init__(self, config: Optional[NormalizerConfig] = None):
        self.config = config or NormalizerConfig()
        c = self.config
        lo, hi = c.ngram_range
        if lo < 1 or hi < lo:
            raise ValueError(f"invalid n-gram range {c.ngram_range}")
        self._boilerplate = [re.compile(p, re.IGNORECASE | re.DOTALL)
                             for p in c.boilerplate_patterns]
        self._stopwords = frozenset()
        if c.remove_stopwords:
            words = c.stopwords if c.stopwords is not None else english_stopwords()
            self._stopwords = frozenset(w.lower() if c.lowercase else w for w in words)
        self._stemmer: Optional[Callable[[str], str]] = None
        if c.stem:
            self._stemmer = SnowballStemmer(c.stem_language).stem

    def clean_text(self, text: str) -> str:
        c = self.config
        s = text or ""
        if c.strip_boilerplate:
            for pat in self._boilerplate:
                s = pat.sub(" ", s)
        if c.lowercase:
            s = s.lower()
        if c.strip_urls:
            s = URL_RE.sub(" ", s)
        if c.strip_numbers:
            s = NUMBER_RE.sub(" ", s)
        if c.strip_punctuation:
            s = SYMBOL_RE.sub(" ", s)
        return SPACE_RE.sub(" ", s).strip()

    def stem_term(self, term: str) -> str:
        """Reduce a single (possibly multi-word) term the way document tokens are reduced."""
        words = term.lower().split() if self.config.lowercase else term.split()
        if self._stemmer is not None:
            words = [self._stemmer(w) for w in words]
        return " ".join(words)

    def tokenize(self, cleaned: str) -> List[str]:
        out = []
        for tok in cleaned.split():
            if tok in self._stopwords:
                continue
            if len(tok) < self.config.min_token_length:
                continue
            out.append(self._stemmer(tok) if self._stemmer else tok)
        return out

    def expand_ngrams(self, tokens: Sequence[str]) -> List[str]:
        lo, hi = self.config.ngram_range
        terms: List[str] = []
        for n in range(lo, hi + 1):
            if n == 1:
                terms.extend(tokens)
            else:
                terms.extend(" ".join(g) for g in ngrams(tokens, n))
        return terms

    def normalize_document(self, doc: Document) -> NormalizedDocument:
        tokens = self.tokenize(self.clean_text(doc.text))
        if not tokens:
            raise EmptyDocumentError(doc.doc_id)
        return NormalizedDocument(document=doc, tokens=tuple(tokens),
                                  terms=tuple(self.expand_ngrams(tokens)))

    def normalize(self, docs: Iterable[Document]) -> NormalizedCorpus:
        kept: List[NormalizedDocument] = []
        dropped: List[str] = []
        for doc in docs:
            try:
                kept.append(self.normalize_document(doc))
            except EmptyDocumentError as e:
                dropped.append(e.doc_id)
        if dropped:
            logger.info("dropped %d empty documents after cleaning: %s",
                        len(dropped), ", ".join(dropped[:10]) + (" ..." if len(dropped) > 10 else ""))
        return NormalizedCorpus(documents=tuple(kept), dropped=tuple(dropped))
