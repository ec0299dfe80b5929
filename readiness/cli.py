#!/usr/bin/env python3
"""Readiness service CLI entrypoint."""

import argparse
import json
import logging
import sys
from pathlib import Path

from readiness.agents.language_model import build_language_model
from readiness.analysis import analyzer
from readiness.analysis.models import AcceptanceCriterion, StoryContext, TaskInput
from readiness.lib.cache import TTLCache
from readiness.lib.config import ServiceConfig, SecretsStore, load_providers_config, load_service_config
from readiness.lib.github import GitHubClient
from readiness.lib.ratelimit import TokenBucket
from readiness.lib.repo_context import GitHubRepoContext
from readiness.pm.synthesizer import SuggestionSynthesizer
from readiness.store.db import Database
from readiness.store.repository import ReadinessStore
from readiness.workflow.engine import ReadinessEngine
from readiness.workflow.worker import WorkerPool

logger = logging.getLogger(__name__)

GITHUB_TOKEN_SECRET = "GITHUB_TOKEN"


def build_services(config: ServiceConfig) -> tuple[ReadinessEngine, WorkerPool]:
    """Wire store, ports, engine and worker pool from configuration."""
    secrets = SecretsStore(config.secrets_file)

    db = Database(config.db_path)
    db.create_all()
    store = ReadinessStore(db)

    client = GitHubClient(
        api_url=config.github_api_url,
        token=secrets.get(GITHUB_TOKEN_SECRET),
        timeout=config.http_timeout_seconds,
    )
    repo_context = GitHubRepoContext(
        client,
        TokenBucket.per_hour(config.github_requests_per_hour, config.github_burst),
        cache=TTLCache(config.structure_cache_ttl),
        structure_wait_seconds=config.structure_wait_seconds,
    )

    language_model = build_language_model(load_providers_config(config.providers_file), secrets)
    engine = ReadinessEngine(
        store,
        language_model,
        repo_context,
        synthesizer=SuggestionSynthesizer(language_model, repo_context, config.max_suggestions),
        debounce_seconds=config.debounce_seconds,
        llm_enrich_analysis=config.llm_enrich_analysis,
    )
    return engine, WorkerPool(engine, config.worker_count)


def _load_config(args) -> ServiceConfig:
    path = Path(args.config) if args.config else None
    return load_service_config(path)


def cmd_serve(args) -> int:
    import uvicorn

    from readiness.api.app import create_app

    config = _load_config(args)
    engine, pool = build_services(config)
    app = create_app(engine, pool)
    logger.info(f"Serving on {args.host}:{args.port} (db={config.db_path}, workers={pool.worker_count})")
    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if args.verbose else "info")
    return 0


def cmd_init_db(args) -> int:
    config = _load_config(args)
    Database(config.db_path).create_all()
    print(f"Initialized {config.db_path}")
    return 0


def cmd_analyze(args) -> int:
    criteria = tuple(AcceptanceCriterion(ac_id=ac_id) for ac_id in args.story_ac)
    story = StoryContext(story_id="cli", title=args.story_title or "", acceptance_criteria=criteria)
    task = TaskInput(
        task_id="cli",
        story_id="cli",
        title=args.title,
        description=args.description or "",
        acceptance_criteria_refs=tuple(args.ac_ref),
    )
    if not task.text.strip():
        print("ERROR: task text must not be empty", file=sys.stderr)
        return 2

    analysis = analyzer.analyze(task, story)
    print(json.dumps(analysis.to_dict(), indent=2))
    return 0 if analysis.score.is_ready else 1


def main(argv=None):
    parser = argparse.ArgumentParser(prog="readiness", description="Task readiness analysis service")
    parser.add_argument('--config', help='Path to readiness.env')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    p_serve = subparsers.add_parser('serve', help='Run the HTTP API and workers')
    p_serve.add_argument('--host', default='127.0.0.1')
    p_serve.add_argument('--port', type=int, default=8080)
    p_serve.set_defaults(func=cmd_serve)

    p_init = subparsers.add_parser('init-db', help='Create database tables')
    p_init.set_defaults(func=cmd_init_db)

    p_analyze = subparsers.add_parser('analyze', help='Score a task locally and print the analysis')
    p_analyze.add_argument('--title', required=True, help='Task title')
    p_analyze.add_argument('--description', help='Task description')
    p_analyze.add_argument('--ac-ref', action='append', default=[], help='Referenced AC id (repeatable)')
    p_analyze.add_argument('--story-title', help='Owning story title')
    p_analyze.add_argument('--story-ac', action='append', default=[], help='AC id defined on the story (repeatable)')
    p_analyze.set_defaults(func=cmd_analyze)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
