"""
Configuration Loader (``agri_config.loader``).

Responsibility
--------------
Loads a payout configuration YAML file and parses it into the frozen
``agri_config.schema`` dataclasses.  Runtime callers go through
``agri_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* Every numeric value is parsed to ``Decimal`` through ``str`` so YAML
  floats such as ``2.5`` never leak binary rounding into fees.
* Produce names and truck tiers are normalized (stripped, lower-cased,
  whitespace removed for tiers) at parse time.
* ``compute_checksum`` is deterministic for identical source data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric values  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from agri_config.schema import (
    CommissionTierDef,
    FeeRateDef,
    PayoutConfiguration,
    SavingsPolicyDef,
    TruckTierDef,
)
from agri_kernel.domain.order import normalize_tier


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{key}: expected a number, got {value!r}") from e


def _optional_decimal(value: Any, key: str) -> Decimal | None:
    return None if value is None or value == "" else parse_decimal(value, key)


def parse_fee(name: str, data: dict[str, Any]) -> FeeRateDef:
    if "percent" in data:
        return FeeRateDef(name, "percent", parse_decimal(data["percent"], f"fees.{name}"))
    if "per_kg" in data:
        return FeeRateDef(name, "per_kg", parse_decimal(data["per_kg"], f"fees.{name}"))
    raise KeyError(f"fees.{name}: needs 'percent' or 'per_kg'")


def parse_truck_tier(data: dict[str, Any]) -> TruckTierDef:
    tier = normalize_tier(data["tier"])
    return TruckTierDef(
        tier=tier,
        transport_pct=parse_decimal(data["transport_pct"], f"truck_tiers.{tier}"),
        capacity_kg=_optional_decimal(data.get("capacity_kg"), f"truck_tiers.{tier}.capacity_kg"),
    )


def parse_commission_tier(data: dict[str, Any]) -> CommissionTierDef:
    return CommissionTierDef(
        min_tons=parse_decimal(data["min_tons"], "commission_tiers.min_tons"),
        max_tons=_optional_decimal(data.get("max_tons"), "commission_tiers.max_tons"),
        rate=parse_decimal(data["rate"], "commission_tiers.rate"),
    )


def parse_savings(data: dict[str, Any]) -> SavingsPolicyDef:
    return SavingsPolicyDef(
        rate_per_kg=parse_decimal(data["rate_per_kg"], "savings.rate_per_kg"),
        annual_interest_rate=parse_decimal(
            data["annual_interest_rate"], "savings.annual_interest_rate"
        ),
        lock_deposits_until_rollover=bool(data.get("lock_deposits_until_rollover", True)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_configuration(data: dict[str, Any]) -> PayoutConfiguration:
    """Parse a whole configuration document."""
    orders = data.get("orders", {})
    payouts = data.get("payouts", {})
    return PayoutConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        currency=str(data["currency"]).upper(),
        unit=str(data.get("unit", "kg")).lower(),
        fees=tuple(parse_fee(name, entry) for name, entry in data.get("fees", {}).items()),
        truck_tiers=tuple(parse_truck_tier(t) for t in data.get("truck_tiers", [])),
        commission_tiers=tuple(
            parse_commission_tier(t) for t in data.get("commission_tiers", [])
        ),
        savings=parse_savings(data["savings"]),
        floor_prices={
            str(k).strip().lower(): parse_decimal(v, f"floor_prices.{k}")
            for k, v in data.get("floor_prices", {}).items()
        },
        minimum_order_quantity=parse_decimal(
            orders.get("minimum_quantity", 1000), "orders.minimum_quantity"
        ),
        default_down_payment_pct=parse_decimal(
            orders.get("default_down_payment_pct", 30), "orders.default_down_payment_pct"
        ),
        payout_unit=parse_decimal(payouts.get("unit", 1), "payouts.unit"),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> PayoutConfiguration:
    return parse_configuration(load_yaml_file(path))
