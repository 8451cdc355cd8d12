"""Deterministic run fingerprints.

A fingerprint is the SHA-256 of the canonical JSON form of a RunConfig.
Canonicalisation makes the hash independent of how the configuration was
assembled: keys are sorted, collections whose order carries no meaning
(scenario variables, Bayesian overrides, option strategies) are sorted by
id, and negative zero is folded into zero. Option order is kept because it
is the order results are reported in.
"""

import hashlib
import json
from typing import Any, Dict, Union

from .data_models import RunConfig

FINGERPRINT_VERSION = 1
RUN_ID_PREFIX = "run-"


def _normalise(value: Any) -> Any:
    if isinstance(value, float):
        return 0.0 if value == 0 else value
    if isinstance(value, dict):
        return {key: _normalise(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalise(item) for item in value]
    return value


def canonical_payload(config: RunConfig) -> Dict[str, Any]:
    """JSON-ready canonical form of ``config``."""
    payload = config.model_dump(mode="json")
    payload['scenario_variables'] = sorted(payload['scenario_variables'], key=lambda v: v['id'])
    payload['bayesian_overrides'] = sorted(payload['bayesian_overrides'], key=lambda b: b['variable_id'])
    payload['option_strategies'] = sorted(payload['option_strategies'], key=lambda s: s['option_id'])
    return {'version': FINGERPRINT_VERSION, 'config': _normalise(payload)}


def canonical_json(config: RunConfig) -> str:
    return json.dumps(
        canonical_payload(config),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        allow_nan=False,
    )


def compute_fingerprint(config: Union[RunConfig, Dict[str, Any]]) -> str:
    """64-character lowercase hex SHA-256 of the canonical configuration.

    Args:
        config: Validated RunConfig, or a raw dictionary to validate first

    Returns:
        Hex digest
    """
    if not isinstance(config, RunConfig):
        from .validation import validate_run_config
        config = validate_run_config(config)
    return hashlib.sha256(canonical_json(config).encode("utf-8")).hexdigest()


def run_id_for(fingerprint: str) -> str:
    return f"{RUN_ID_PREFIX}{fingerprint}"
