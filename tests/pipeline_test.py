import json
import os
from datetime import date

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from blogstm.__main__ import main
from blogstm.config import PipelineConfig
from blogstm.data import Document
from blogstm.lexicon import SentimentLexicon
from blogstm.pipeline import run_pipeline, write_artifacts

from conftest import make_config, make_documents


def _lexicon():
    return SentimentLexicon.from_mapping({
        "fear": ["detention", "border"],
        "trust": ["protection"],
        "negative": ["detention", "coal"],
        "positive": ["protection", "solar"],
    })


def test_config_round_trip(tmp_path):
    config = make_config()
    raw = config.to_dict()
    assert raw["topic_model"]["seed"] == 7
    assert raw["embedding"]["seed"] == 7
    p = tmp_path / "cfg.json"
    p.write_text(json.dumps(raw), encoding="utf-8")
    again = PipelineConfig.from_json(str(p))
    assert again == config
    assert again.normalizer.ngram_range == (1, 1)


def test_section_seed_becomes_pipeline_seed():
    config = PipelineConfig.from_dict({"topic_model": {"seed": 3}})
    assert config.seed == 3
    assert config.topic_model.seed == 3
    assert config.embedding.seed == 3
    config = PipelineConfig.from_dict({"seed": 5, "embedding": {"seed": 5}})
    assert config.topic_model.seed == 5
    assert PipelineConfig.from_dict({}).topic_model.seed == PipelineConfig().seed


def test_conflicting_seeds_are_rejected():
    with pytest.raises(ValueError):
        PipelineConfig.from_dict({"topic_model": {"seed": 3}, "embedding": {"seed": 4}})
    with pytest.raises(ValueError):
        PipelineConfig.from_dict({"seed": 1, "topic_model": {"seed": 3}})


def test_run_pipeline_and_artifacts(tmp_path):
    documents = make_documents(30)
    result = run_pipeline(documents, make_config(max_em_iter=2), lexicon=_lexicon())
    assert result.model.theta.shape == (30, 2)
    assert result.doc_vectors.shape == (30, 10)
    assert result.lexicon_scores.attrs["method"] == "lexicon"
    assert set(result.bucket_scores) == {f"{m}_by_{b}" for m in ("lexicon", "embedding")
                                         for b in ("date", "month", "organisation", "topic")}
    assert list(result.bucket_scores["lexicon_by_organisation"].index) == ["amnesty", "greenpeace", "oxfam"]
    assert list(result.corpus_scores.index) == ["corpus"]
    assert set(result.effects["topic"]) == {0, 1}
    assert list(result.effects.columns) == ["topic", "day_of_year", "estimate", "lower", "upper"]
    assert result.events is None

    written = write_artifacts(result, str(tmp_path / "out"))
    names = {os.path.basename(p) for p in written}
    for name in ("vocabulary.csv", "dtm_counts.npz", "dtm_tfidf.npz", "dtm_proportions.npz",
                 "doc_topics.csv", "topic_terms.json", "embeddings.csv", "lexicon_scores.csv",
                 "embedding_scores.csv", "lexicon_by_month.csv", "topic_effects.csv", "topic_term_probs.csv",
                 "run_config.json"):
        assert name in names
    counts = sparse.load_npz(str(tmp_path / "out" / "dtm_counts.npz"))
    assert (counts != result.dtm.counts).nnz == 0
    topics = pd.read_csv(tmp_path / "out" / "doc_topics.csv")
    assert np.allclose(topics[["topic_0", "topic_1"]].sum(axis=1), 1.0)


def test_cli_run_and_search(tmp_path, capsys):
    docs = make_documents(30)
    frame = pd.DataFrame({
        "doc_id": [d.doc_id for d in docs],
        "organisation": [d.organisation for d in docs],
        "title": [d.title for d in docs],
        "date": [d.date.strftime("%d/%m/%Y") for d in docs],
        "text": [d.text for d in docs],
    })
    csv = tmp_path / "docs.csv"
    frame.to_csv(csv, index=False)
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps(make_config(max_em_iter=2).to_dict()), encoding="utf-8")
    lex = tmp_path / "nrc.txt"
    lex.write_text("detention\tfear\t1\ndetention\tnegative\t1\nsolar\tpositive\t1\n", encoding="utf-8")
    events = tmp_path / "events.csv"
    events.write_text("date,event\n01/06/2019,election\n15/02/2019,policy change\n", encoding="utf-8")

    out = tmp_path / "run"
    main(["run", "--documents", str(csv), "--out", str(out), "--config", str(cfg),
          "--lexicon", str(lex), "--events", str(events), "--k", "3"])
    topics = pd.read_csv(out / "doc_topics.csv")
    assert [c for c in topics.columns if c.startswith("topic_")] == ["topic_0", "topic_1", "topic_2"]
    saved = json.loads((out / "run_config.json").read_text(encoding="utf-8"))
    assert saved["topic_model"]["K"] == 3
    timeline = pd.read_csv(out / "events.csv")
    assert timeline["event"].tolist() == ["policy change", "election"]

    main(["search", "--documents", str(csv), "--config", str(cfg), "--k", "2", "3",
          "--out", str(tmp_path / "search")])
    printed = capsys.readouterr().out
    assert "heldout" in printed
    table = pd.read_csv(tmp_path / "search" / "model_selection.csv")
    assert table["K"].tolist() == [2, 3]


def test_boilerplate_only_document_is_dropped():
    documents = make_documents(30)
    documents.append(Document(doc_id="boiler", organisation="amnesty", title="legal", date=date(2019, 6, 1),
                              text="Disclaimer: the views expressed are our own. All rights reserved."))
    result = run_pipeline(documents, make_config(max_em_iter=1))
    assert len(result.corpus) == len(documents) - 1
    assert result.corpus.dropped == ("boiler",)
    assert "boiler" not in result.corpus.doc_ids
    assert "boiler" not in result.dtm.doc_ids
    assert "boiler" not in result.model.doc_ids
    assert result.model.theta.shape[0] == result.dtm.shape[0] == 30
    assert result.design.X.shape[0] == 30
