"""Production configuration guard — enforces hard constraints in production.

Runs once when a workflow is wired up and fails hard (raises
``ProductionConfigError``) if the configuration cannot safely write to a
real repository and ledger.  Other code should not scatter
``if is_production`` checks.
"""

from __future__ import annotations

import logging

from docflow.config import DocflowConfig

logger = logging.getLogger(__name__)


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The process should exit; this must not be caught and ignored.
    """


def enforce_production_constraints(config: DocflowConfig) -> None:
    """Validate production-critical settings.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. A GitHub token must be configured.
    3. The ledger must not be created implicitly (a missing store is a
       deployment error, not something to paper over).

    Raises
    ------
    ProductionConfigError
        If any constraint is violated.
    """
    if not config.is_production:
        return

    violations: list[str] = []
    if config.debug:
        violations.append(
            "debug=True is not allowed in production. Set DOCFLOW_DEBUG=false."
        )
    if not config.github_token:
        violations.append(
            "github_token is empty. Set DOCFLOW_GITHUB_TOKEN."
        )
    if config.ledger_create_if_missing:
        violations.append(
            "ledger_create_if_missing=True is not allowed in production. "
            "Provision the ledger and set DOCFLOW_LEDGER_CREATE_IF_MISSING=false."
        )

    if violations:
        msg = "Production constraints violated:\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.error(msg)
        raise ProductionConfigError(msg)

    if not config.ai_enabled:
        logger.warning("Running in production without a Gemini key; AI drafting is off.")
    logger.info("Production constraints satisfied.")
