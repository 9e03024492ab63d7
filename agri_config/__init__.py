"""
agri_config -- single public entrypoint for payout configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain fee rates,
    truck and commission tiers, floor prices and the savings policy.
    YAML loading is internal tooling.

Architecture position:
    Configuration -- sits above agri_kernel and agri_engines and below
    agri_services.  The kernel and engines never import agri_config;
    ``agri_config.bridges`` translates configuration into engine objects.

Invariants enforced:
    - Every returned configuration has passed ``validate_configuration``.
    - Same YAML source always yields the same checksum.

Failure modes:
    - FileNotFoundError / yaml.YAMLError from loading.
    - InvalidConfigurationError when validation reports errors.

Audit relevance:
    Every successful call emits an AGRI_CONFIG_TRACE record with the
    config id, version and checksum; payouts can be tied back to the exact
    configuration that priced them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agri_config.loader import load_configuration
from agri_config.schema import PayoutConfiguration
from agri_config.validator import validate_configuration
from agri_kernel.exceptions import InvalidConfigurationError

_logger = logging.getLogger("agri_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> PayoutConfiguration:
    """
    Load, validate and return the payout configuration.

    Args:
        path: YAML file to load.  Defaults to the packaged
            ``agri_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: the file does not exist.
        InvalidConfigurationError: validation reported errors.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_configuration(source)

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})
    if not validation.is_valid:
        raise InvalidConfigurationError(validation.errors)

    _logger.info(
        "AGRI_CONFIG_TRACE",
        extra={
            "trace_type": "AGRI_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "currency": config.currency,
            "truck_tier_count": len(config.truck_tiers),
            "commission_tier_count": len(config.commission_tiers),
            "floor_price_count": len(config.floor_prices),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "PayoutConfiguration",
    "get_active_config",
]
