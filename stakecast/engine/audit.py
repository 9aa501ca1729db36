"""Deterministic hashing and audit logging for state transitions.

Every committed transition is logged together with a SHA-256 hash of its
inputs and outputs. A verifier replaying the same sequence of transitions
must arrive at the same hashes; the first mismatch pinpoints divergence.
"""

from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

from stakecast.shared.logging import EVENTS_LEVEL_NUM


def _serialize_value(val: Any) -> Any:
    """Serialize a value for deterministic hashing."""
    if val is None:
        return None
    elif isinstance(val, bool):
        return val
    elif isinstance(val, Enum):
        return _serialize_value(val.value)
    elif isinstance(val, dict):
        return {str(k): _serialize_value(v) for k, v in sorted(val.items())}
    elif isinstance(val, (list, tuple)):
        return [_serialize_value(v) for v in val]
    elif isinstance(val, int):
        # Amounts may exceed JSON-safe integer range in other consumers
        return str(val)
    elif isinstance(val, str):
        return val
    else:
        return str(val)


def compute_hash(data: Dict[str, Any]) -> str:
    """Compute deterministic SHA256 hash of a dictionary.

    The hash is computed from a canonical JSON representation
    with sorted keys and consistent formatting.

    Args:
        data: Dictionary to hash

    Returns:
        Hex-encoded SHA256 hash (64 characters)
    """
    serialized = _serialize_value(data)
    canonical = json.dumps(serialized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def transition_hash(operation: str, payload: Dict[str, Any]) -> str:
    return compute_hash({"operation": operation, "payload": payload})


class TransitionAuditLogger:
    """Structured logger for the transition audit trail."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        events_logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger("stakecast.audit")
        # Committed transitions also go to the EVENT-level file log when configured
        self.events_logger = events_logger or logging.getLogger("stakecast.event")

    def log_transition(self, operation: str, height: int, payload: Dict[str, Any]) -> str:
        """Log a committed transition and return its hash.

        Args:
            operation: Transition name (create_round, submit_prediction, ...)
            height: Block height the transition executed at
            payload: Inputs and outputs of the transition

        Returns:
            Hex-encoded transition hash
        """
        digest = transition_hash(operation, {"height": height, **payload})
        self.logger.info({
            "event": "transition",
            "operation": operation,
            "height": height,
            "hash": digest[:16] + "...",
            **_serialize_value(payload),
        })
        self.events_logger.log(EVENTS_LEVEL_NUM, f"{operation} height={height} hash={digest}")
        return digest

    def log_rejection(self, operation: str, height: int, code: str, message: str) -> None:
        self.logger.warning({
            "event": "transition_rejected",
            "operation": operation,
            "height": height,
            "code": code,
            "message": message,
        })


__all__ = ["compute_hash", "transition_hash", "TransitionAuditLogger"]
