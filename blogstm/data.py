import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Sequence

import pandas as pd

from .errors import ParseError

logger = logging.getLogger(__name__)

DOCUMENT_COLUMNS = ("organisation", "title", "date", "text")
DATE_FORMATS = ("%d/%m/%Y", "%d/%m/%y")


@dataclass(frozen=True)
class Document:
    doc_id: str
    organisation: str
    title: str
    date: date
    text: str

    def __post_init__(self):
        if not self.doc_id:
            raise ParseError("document id must be non-empty")
        if not isinstance(self.date, date):
            raise ParseError(f"document {self.doc_id!r}: date must be a datetime.date")

    @property
    def day_of_year(self) -> int:
        return self.date.timetuple().tm_yday


@dataclass(frozen=True)
class Event:
    date: date
    text: str


def parse_date(value, row: Optional[int] = None) -> date:
    """Parse a day/month/year string. Anything else is a ParseError."""
    where = f" (row {row})" if row is not None else ""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ParseError(f"missing or non-string date{where}: {value!r}")
    s = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ParseError(f"malformed date{where}: {value!r}, expected day/month/year")


def _cell_text(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value)


def documents_from_frame(df: pd.DataFrame) -> List[Document]:
    """Build Documents from a table with organisation, title, date, text columns."""
    missing = [c for c in DOCUMENT_COLUMNS if c not in df.columns]
    if missing:
        raise ParseError(f"document table is missing columns: {missing}")
    id_col = next((c for c in ("doc_id", "id") if c in df.columns), None)
    docs: List[Document] = []
    seen = set()
    for pos, (_, row) in enumerate(df.iterrows()):
        doc_id = _cell_text(row[id_col]) if id_col else str(pos)
        if doc_id in seen:
            raise ParseError(f"duplicate document id {doc_id!r} (row {pos})")
        seen.add(doc_id)
        organisation = _cell_text(row["organisation"]).strip()
        if not organisation:
            raise ParseError(f"missing organisation (row {pos})")
        docs.append(Document(
            doc_id=doc_id,
            organisation=organisation,
            title=_cell_text(row["title"]),
            date=parse_date(row["date"], row=pos),
            text=_cell_text(row["text"]),
        ))
    logger.info("ingested %d documents from %d organisations",
                len(docs), len({d.organisation for d in docs}))
    return docs


def events_from_frame(df: pd.DataFrame) -> List[Event]:
    text_col = next((c for c in ("event", "text") if c in df.columns), None)
    if "date" not in df.columns or text_col is None:
        raise ParseError("event table needs a date column and an event/text column")
    events = [Event(date=parse_date(row["date"], row=pos), text=_cell_text(row[text_col]))
              for pos, (_, row) in enumerate(df.iterrows())]
    events.sort(key=lambda e: e.date)
    return events


def read_documents(path: str) -> List[Document]:
    # dates stay strings so that parse_date sees the raw value
    return documents_from_frame(pd.read_csv(path, dtype=str, keep_default_na=False))


def read_events(path: str) -> List[Event]:
    return events_from_frame(pd.read_csv(path, dtype=str, keep_default_na=False))


def documents_frame(docs: Sequence[Document]) -> pd.DataFrame:
    """Covariate frame, one row per document, used by the prevalence design."""
    return pd.DataFrame({
        "doc_id": [d.doc_id for d in docs],
        "organisation": [d.organisation for d in docs],
        "date": pd.to_datetime([d.date for d in docs]),
        "day_of_year": [d.day_of_year for d in docs],
    })
