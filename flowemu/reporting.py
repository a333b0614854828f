"""Logging of transaction and script execution results."""

from __future__ import annotations

import logging

from flowemu.model import Identifier
from flowemu.results import ScriptResult, TransactionResult

_RESET = "\033[0m"
_BOLD = "1"
_FAINT = "2"
_RED = "31"
_GREEN = "32"


def _colorize(text: str, *codes: str) -> str:
    return f"\033[{';'.join(codes)}m{text}{_RESET}"


def _log_prefix(prefix: str, identifier: Identifier, color: str) -> str:
    label = _colorize(prefix, _BOLD, color)
    short_id = _colorize(f"[{str(identifier)[:6]}]", _FAINT)
    return f"{label} {short_id}"


def print_script_result(logger: logging.Logger, result: ScriptResult) -> None:
    """Log the outcome of a script execution."""
    fields = {
        "scriptID": str(result.script_id),
        "computationUsed": result.computation_used,
        "memoryEstimate": result.memory_estimate,
    }
    if result.succeeded():
        logger.debug("⭐  Script executed", extra={"fields": fields})
    else:
        logger.warning("❗  Script reverted", extra={"fields": fields})
        logger.warning("%s %s", _log_prefix("ERR", result.script_id, _RED), result.error)


def print_transaction_result(logger: logging.Logger, result: TransactionResult) -> None:
    """Log the outcome of a transaction execution, its events and any error."""
    fields = {
        "txID": str(result.transaction_id),
        "computationUsed": result.computation_used,
        "memoryEstimate": result.memory_estimate,
    }
    if result.succeeded():
        logger.debug("⭐  Transaction executed", extra={"fields": fields})
    else:
        logger.warning("❗  Transaction reverted", extra={"fields": fields})

    for event in result.events:
        logger.debug("%s %s", _log_prefix("EVT", result.transaction_id, _GREEN), event)

    if not result.succeeded():
        logger.warning("%s %s", _log_prefix("ERR", result.transaction_id, _RED), result.error)
        if result.debug is not None:
            logger.debug(
                "%s %s",
                "❗  Transaction Signature Error",
                result.debug.message,
                extra={"fields": dict(result.debug.meta or {})},
            )