from datetime import date

import pandas as pd
import pytest

from blogstm.data import (Document, documents_frame, documents_from_frame, parse_date,
                          read_documents, read_events)
from blogstm.errors import ParseError


def test_parse_date_day_month_year():
    assert parse_date("05/03/2019") == date(2019, 3, 5)
    assert parse_date("05/03/19") == date(2019, 3, 5)
    assert parse_date(" 31/12/2020 ") == date(2020, 12, 31)


@pytest.mark.parametrize("value", ["2019-03-05", "32/01/2019", "", None, "yesterday"])
def test_parse_date_rejects_malformed(value):
    with pytest.raises(ParseError):
        parse_date(value)
    # ParseError is also a ValueError
    with pytest.raises(ValueError):
        parse_date(value)


def test_day_of_year():
    doc = Document(doc_id="a", organisation="o", title="t", date=date(2020, 12, 31), text="x")
    assert doc.day_of_year == 366


def test_documents_from_frame_ids_and_errors():
    df = pd.DataFrame({"organisation": ["a", "b"], "title": ["t1", "t2"],
                       "date": ["01/02/2019", "02/02/2019"], "text": ["one", "two"]})
    docs = documents_from_frame(df)
    assert [d.doc_id for d in docs] == ["0", "1"]

    with pytest.raises(ParseError):
        documents_from_frame(df.drop(columns=["text"]))
    dup = df.assign(doc_id=["x", "x"])
    with pytest.raises(ParseError):
        documents_from_frame(dup)
    bad = df.assign(date=["01/02/2019", "2019-02-02"])
    with pytest.raises(ParseError):
        documents_from_frame(bad)


def test_read_documents_and_events(tmp_path):
    p = tmp_path / "docs.csv"
    p.write_text("organisation,title,date,text\n"
                 "amnesty,First,03/01/2019,\"Hello, world\"\n"
                 "oxfam,Second,04/01/2019,\n", encoding="utf-8")
    docs = read_documents(str(p))
    assert len(docs) == 2
    assert docs[0].text == "Hello, world"
    assert docs[1].text == ""

    frame = documents_frame(docs)
    assert list(frame["day_of_year"]) == [3, 4]

    e = tmp_path / "events.csv"
    e.write_text("date,event\n10/05/2019,later\n01/02/2019,earlier\n", encoding="utf-8")
    events = read_events(str(e))
    assert [ev.text for ev in events] == ["earlier", "later"]
