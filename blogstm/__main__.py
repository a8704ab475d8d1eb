"""CLI entry-point: ``python -m blogstm run`` / ``python -m blogstm search``."""
import argparse
import logging
import os
import sys

from .config import PipelineConfig
from .data import read_documents, read_events
from .lexicon import SentimentLexicon
from .pipeline import prepare, run_pipeline, write_artifacts
from .selection import search_k

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_config(path):
    return PipelineConfig.from_json(path) if path else PipelineConfig()


def _run(args):
    config = _load_config(args.config)
    if args.k is not None:
        config.topic_model.K = args.k
    documents = read_documents(args.documents)
    lexicon = SentimentLexicon.from_nrc(args.lexicon) if args.lexicon else None
    events = read_events(args.events) if args.events else None
    result = run_pipeline(documents, config, lexicon=lexicon, search=args.search, n_jobs=args.jobs,
                          events=events)
    written = write_artifacts(result, args.out)
    logger.info("wrote %d artifacts to %s", len(written), args.out)


def _search(args):
    config = _load_config(args.config)
    documents = read_documents(args.documents)
    _, _, dtm, design = prepare(documents, config)
    table = search_k(dtm, design, args.k or config.topic_model.candidate_k, config.topic_model,
                     n_jobs=args.jobs)
    print(table.to_string(index=False))
    if args.out:
        os.makedirs(args.out, exist_ok=True)
        path = os.path.join(args.out, "model_selection.csv")
        table.to_csv(path, index=False)
        logger.info("wrote %s", path)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="blogstm",
        description="Structural topic model and sentiment analysis of organisational blog posts.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command")

    # ── run ────────────────────────────────────────────────────────────
    run_parser = sub.add_parser("run", help="Fit the topic model and score sentiment.")
    run_parser.add_argument("--documents", required=True, help="CSV with organisation,title,date,text.")
    run_parser.add_argument("--out", required=True, help="Output directory for the artifacts.")
    run_parser.add_argument("--config", help="JSON configuration file.")
    run_parser.add_argument("--lexicon", help="NRC emotion lexicon (word<TAB>category<TAB>flag).")
    run_parser.add_argument("--events", help="CSV timeline with date,event columns.")
    run_parser.add_argument("--k", type=int, help="Number of topics (overrides the config).")
    run_parser.add_argument("--search", action="store_true", help="Also run the model selection sweep.")
    run_parser.add_argument("--jobs", type=int, default=1, help="Parallel fits for the sweep.")

    # ── search ─────────────────────────────────────────────────────────
    search_parser = sub.add_parser("search", help="Compare candidate topic counts.")
    search_parser.add_argument("--documents", required=True)
    search_parser.add_argument("--k", type=int, nargs="+", help="Candidate topic counts.")
    search_parser.add_argument("--config", help="JSON configuration file.")
    search_parser.add_argument("--out", help="Directory for model_selection.csv.")
    search_parser.add_argument("--jobs", type=int, default=1)

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.command == "run":
        _run(args)
    elif args.command == "search":
        _search(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
