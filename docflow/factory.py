"""Wire workflows to their collaborators from a ``DocflowConfig``.

The only place that decides which concrete adapters back the protocols.
The production guard runs here, before anything touches a repository.
"""

from __future__ import annotations

import logging

from docflow.adapters.base import ChangeProducer, RepositoryService, TicketSystem
from docflow.adapters.gemini import GeminiChangeProducer
from docflow.adapters.github import GitHubRepository
from docflow.adapters.jira import JiraTicketSystem
from docflow.config import DocflowConfig
from docflow.core.ingest import IngestWorkflow
from docflow.core.ledger import TransactionLedger
from docflow.core.production_guard import enforce_production_constraints
from docflow.core.revert_engine import RevertEngine

logger = logging.getLogger(__name__)


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Split ``owner/repo`` into its parts."""
    owner, sep, repo = slug.strip().partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ValueError(f"Expected OWNER/REPO, got {slug!r}")
    return owner, repo


def open_ledger(config: DocflowConfig) -> TransactionLedger:
    return TransactionLedger(
        config.ledger_path, create_if_missing=config.ledger_create_if_missing
    )


def build_repository(config: DocflowConfig, owner: str, repo: str) -> GitHubRepository:
    enforce_production_constraints(config)
    return GitHubRepository(
        owner,
        repo,
        token=config.github_token,
        api_url=config.github_api_url,
        timeout_seconds=config.request_timeout_seconds,
    )


def build_producer(config: DocflowConfig) -> GeminiChangeProducer | None:
    if not config.ai_enabled:
        logger.info("No Gemini API key configured; AI drafting disabled")
        return None
    return GeminiChangeProducer(
        config.gemini_api_key,
        models=config.gemini_models,
        api_url=config.gemini_api_url,
        timeout_seconds=config.request_timeout_seconds,
    )


def build_tickets(config: DocflowConfig) -> JiraTicketSystem | None:
    if not config.jira_enabled:
        return None
    return JiraTicketSystem(
        config.jira_base_url,
        config.jira_email,
        config.jira_api_token,
        timeout_seconds=config.request_timeout_seconds,
    )


def build_ingest_workflow(
    config: DocflowConfig,
    ledger: TransactionLedger,
    repository: RepositoryService,
    *,
    producer: ChangeProducer | None = None,
    tickets: TicketSystem | None = None,
) -> IngestWorkflow:
    return IngestWorkflow(
        ledger,
        repository,
        producer=producer,
        tickets=tickets,
        doc_path=config.doc_file_path,
        default_branch=config.default_branch,
        max_append_attempts=config.append_max_attempts,
        timeout_seconds=config.request_timeout_seconds,
    )


def build_revert_engine(
    config: DocflowConfig,
    ledger: TransactionLedger,
    repository: RepositoryService,
    *,
    producer: ChangeProducer | None = None,
) -> RevertEngine:
    return RevertEngine(
        ledger,
        repository,
        producer=producer,
        doc_path=config.doc_file_path,
        max_append_attempts=config.append_max_attempts,
        context_lines=config.revert_context_lines,
    )
