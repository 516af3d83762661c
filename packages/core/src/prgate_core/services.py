"""Wire store, dispatcher, analyzer and orchestrator together from a config dict.

Shared by the HTTP server and the CLI so both processes build the pipeline
the same way against the same database file.
"""

from __future__ import annotations

from dataclasses import dataclass

from prgate_core.orchestrator import ReviewOrchestrator
from prgate_core.providers import get_analyzer
from prgate_store.base import BaseStore
from prgate_store.queue import BaseDispatcher, SQLiteDispatcher
from prgate_store.sqlite import SQLiteStore


@dataclass
class Services:
    store: BaseStore
    dispatcher: BaseDispatcher
    orchestrator: ReviewOrchestrator

    def close(self) -> None:
        self.dispatcher.close()
        self.store.close()


def build_store(config: dict) -> BaseStore:
    return SQLiteStore(db_path=config.get("store_path", ".prgate.db"))


def build_services(config: dict, store: BaseStore | None = None, analyzer=None, with_analyzer: bool = True) -> Services:
    """Build the pipeline. The API process only admits reviews, so it may skip the analyzer."""
    store = store or build_store(config)
    if analyzer is None and with_analyzer:
        analyzer = get_analyzer(config)
    dispatcher = SQLiteDispatcher(
        db_path=config.get("store_path", ".prgate.db"),
        max_attempts=config.get("task_max_attempts", 5),
    )
    orchestrator = ReviewOrchestrator(
        store=store,
        dispatcher=dispatcher,
        analyzer=analyzer,
        config=config,
        fallback_token=config.get("github_token"),
    )
    return Services(store=store, dispatcher=dispatcher, orchestrator=orchestrator)
