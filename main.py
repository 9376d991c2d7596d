import argparse
import json
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from core.app_context import AppContext
from core.config_loader import configure_logging, load_config
from core.exceptions import NoMatchAvailableError
from core.models import Brief, Candidate, ClientPreferences, MatchEvent
from core.pool import InMemoryCandidatePool

logger = logging.getLogger(__name__)


def load_json_file(path: str) -> Any:
    logger.info(f"Loading {path}")
    with open(path, 'r') as f:
        return json.load(f)


def load_candidates(path: str) -> List[Candidate]:
    data = load_json_file(path)
    if isinstance(data, dict):
        data = data.get("candidates", [])
    return [Candidate.from_dict(item) for item in data]


def load_brief(path: str) -> Brief:
    return Brief.from_dict(load_json_file(path))


def load_preferences(path: Optional[str]) -> Optional[ClientPreferences]:
    if not path:
        return None
    data: Dict[str, Any] = load_json_file(path)
    return ClientPreferences(**{k: v for k, v in data.items() if k in ClientPreferences.__dataclass_fields__})


def event_to_dict(event: MatchEvent) -> Dict[str, Any]:
    return {
        "run_id": event.run_id,
        "phase": event.phase.value,
        "confidence": event.confidence.value,
        "elapsed_ms": round(event.elapsed_ms, 1),
        "match": {
            "candidate_id": event.match.candidate_id,
            "name": event.match.candidate.name,
            "score": event.match.score,
            "explanation": event.match.explanation,
            "strengths": list(event.match.strengths),
            "risks": list(event.match.risks),
        },
        "alternates": [
            {"candidate_id": alt.candidate_id, "score": alt.score} for alt in event.alternates
        ],
    }


def main():
    parser = argparse.ArgumentParser(description="Progressive Matcher")
    parser.add_argument('--config', type=str, default='config.yaml', help='Path to YAML config')
    parser.add_argument('--brief', type=str, help='Path to a brief JSON file')
    parser.add_argument('--candidates', type=str,
                        help='Path to a candidates JSON file (default: database pool)')
    parser.add_argument('--preferences', type=str, help='Path to a client preferences JSON file')
    parser.add_argument('--init-db', action='store_true', help='Create database tables and exit')
    parser.add_argument('--precompute', action='store_true',
                        help='Refresh candidate embeddings from --candidates and exit')
    parser.add_argument('--timeout', type=float, default=30.0,
                        help='Seconds to wait for background phases')
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config.logging)

    if args.init_db:
        from database.database import configure_database, init_db
        configure_database(config.database.url if config.database else None)
        init_db()
        logger.info("Database tables created")
        return 0

    pool = InMemoryCandidatePool(load_candidates(args.candidates)) if args.candidates else None
    ctx = AppContext.build(config, candidate_pool=pool)

    try:
        if args.precompute:
            if pool is None:
                parser.error("--precompute requires --candidates")
            report = ctx.embeddings.precompute_candidate_embeddings(pool.all())
            print(json.dumps(report.__dict__))
            return 0

        if not args.brief:
            parser.error("--brief is required")

        brief = load_brief(args.brief)
        try:
            run = ctx.matcher.find_match(brief, load_preferences(args.preferences))
        except NoMatchAvailableError as e:
            logger.error(str(e))
            return 1

        def signal_handler(sig, frame):
            logger.info("Shutdown signal received")
            run.cancel()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        for event in run.stream.iter_events(timeout=args.timeout):
            print(json.dumps(event_to_dict(event)), flush=True)

        if not run.wait(timeout=args.timeout):
            logger.warning(f"Run {run.run_id} still running after {args.timeout}s, cancelling")
            run.cancel()
        return 0
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
