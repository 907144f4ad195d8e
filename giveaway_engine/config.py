from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigError(RuntimeError):
    """Raised when the configuration file is invalid."""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: Path = Path("logs")


@dataclass(slots=True)
class PermissionsConfig:
    admin_roles: List[int] = field(default_factory=list)
    development_guild_id: Optional[int] = None


@dataclass(slots=True)
class EligibilityConfig:
    member_role_id: Optional[int] = None
    tag_role_id: Optional[int] = None
    min_role_age_days: int = 30


@dataclass(slots=True)
class TicketWeights:
    base: int = 1
    booster_bonus: int = 1
    max_total: int = 2


@dataclass(slots=True)
class GiveawayConfig:
    eligibility: EligibilityConfig = field(default_factory=EligibilityConfig)
    weights: TicketWeights = field(default_factory=TicketWeights)


@dataclass(slots=True)
class Config:
    token: str
    application_id: int
    database_path: Path
    logging: LoggingConfig
    permissions: PermissionsConfig
    giveaway: GiveawayConfig


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required config key: {key}")
    return data[key]


def _resolve_env_value(value: str, key: str) -> str:
    trimmed = value.strip()
    if trimmed.startswith("${") and trimmed.endswith("}"):
        env_name = trimmed[2:-1].strip()
        if not env_name:
            raise ConfigError(f"Environment reference for '{key}' is empty.")
        env_value = os.getenv(env_name)
        if env_value is None:
            raise ConfigError(
                f"Environment variable '{env_name}' referenced by '{key}' is not set."
            )
        return env_value
    return value


def _optional_id(value: Any, key: str) -> Optional[int]:
    if value in (None, "", 0):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer ID or null.") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be a positive integer.")
    return parsed


def _non_negative_int(value: Any, key: str, *, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer.")
    if value < minimum:
        raise ConfigError(f"{key} must be at least {minimum}.")
    return value


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    if not isinstance(data, dict):
        raise ConfigError("logging must be a mapping.")
    level = str(data.get("level", "INFO")).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"logging.level {level!r} is not a known log level.")
    directory = Path(str(data.get("directory") or "logs"))
    return LoggingConfig(level=level, directory=directory)


def _parse_permissions(data: Dict[str, Any]) -> PermissionsConfig:
    admin_roles_raw = data.get("admin_roles", [])
    if not isinstance(admin_roles_raw, list):
        raise ConfigError("permissions.admin_roles must be a list of role IDs.")
    admin_roles: List[int] = []
    for role_id in admin_roles_raw:
        try:
            admin_roles.append(int(role_id))
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"permissions.admin_roles contains invalid role id: {role_id!r}"
            ) from exc
    development_guild_id = _optional_id(
        data.get("development_guild_id"), "permissions.development_guild_id"
    )
    return PermissionsConfig(
        admin_roles=admin_roles, development_guild_id=development_guild_id
    )


def _parse_giveaway(data: Dict[str, Any]) -> GiveawayConfig:
    if not isinstance(data, dict):
        raise ConfigError("giveaway must be a mapping.")

    tag_raw = data.get("tag_eligibility", {}) or {}
    if not isinstance(tag_raw, dict):
        raise ConfigError("giveaway.tag_eligibility must be a mapping.")
    eligibility = EligibilityConfig(
        member_role_id=_optional_id(
            data.get("member_role_id"), "giveaway.member_role_id"
        ),
        tag_role_id=_optional_id(
            tag_raw.get("tag_role_id"), "giveaway.tag_eligibility.tag_role_id"
        ),
        min_role_age_days=_non_negative_int(
            tag_raw.get("min_role_age_days", 30),
            "giveaway.tag_eligibility.min_role_age_days",
        ),
    )

    weights_raw = data.get("weights", {}) or {}
    if not isinstance(weights_raw, dict):
        raise ConfigError("giveaway.weights must be a mapping.")
    weights = TicketWeights(
        base=_non_negative_int(
            weights_raw.get("base", 1), "giveaway.weights.base", minimum=1
        ),
        booster_bonus=_non_negative_int(
            weights_raw.get("booster_bonus", 1), "giveaway.weights.booster_bonus"
        ),
        max_total=_non_negative_int(
            weights_raw.get("max_total", 2), "giveaway.weights.max_total", minimum=1
        ),
    )
    return GiveawayConfig(eligibility=eligibility, weights=weights)


def load_config(path: Path) -> Config:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist.")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping at the root.")

    token_raw = str(_require(data, "token"))
    token = _resolve_env_value(token_raw, "token").strip()
    if not token:
        raise ConfigError("token must not be empty.")
    try:
        application_id = int(_require(data, "application_id"))
    except (TypeError, ValueError) as exc:
        raise ConfigError("application_id must be an integer.") from exc
    database_path = Path(str(data.get("database_path", "data/giveaways.sqlite")))

    return Config(
        token=token,
        application_id=application_id,
        database_path=database_path,
        logging=_parse_logging(data.get("logging", {}) or {}),
        permissions=_parse_permissions(data.get("permissions", {}) or {}),
        giveaway=_parse_giveaway(data.get("giveaway", {}) or {}),
    )
