"""
Engine settings and asset registry loading.

Settings resolve in three layers, later layers winning:

1. `AmmSettings` defaults
2. the optional `settings:` mapping of a YAML file
3. `FEEAMM_*` environment variables

Asset files are validated fail-closed: any unknown key, bad type or
inconsistent fee schedule raises `ConfigFileError` naming the offending path.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .core.errors import AmmError
from .state.assets import MAX_DECIMALS, AssetDescriptor, Extension, TransferFee, TransferFeeConfig
from .state.pools import MAX_TRADE_FEE_BPS

logger = logging.getLogger(__name__)

ENV_MAX_TRADE_FEE_BPS = "FEEAMM_MAX_TRADE_FEE_BPS"
ENV_LP_DECIMALS = "FEEAMM_LP_DECIMALS"
ENV_LOG_LEVEL = "FEEAMM_LOG_LEVEL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_ASSET_KEYS = {"identity", "decimals", "extensions", "transfer_fee", "freeze_authority", "is_native"}
_FEE_KEYS = {"epoch", "basis_points", "maximum_fee"}


class ConfigFileError(AmmError):
    """Raised when a settings or asset file is malformed."""


@dataclass(frozen=True)
class AmmSettings:
    # Upper bound for a pool's trading fee; can be tightened, never raised past 1000.
    max_trade_fee_bps: int = MAX_TRADE_FEE_BPS
    # Decimal scale recorded on newly created LP share assets.
    lp_decimals: int = 6
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in ("max_trade_fee_bps", "lp_decimals"):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
        if not (0 <= self.max_trade_fee_bps <= MAX_TRADE_FEE_BPS):
            raise ValueError(f"max_trade_fee_bps must be in [0, {MAX_TRADE_FEE_BPS}]: {self.max_trade_fee_bps}")
        if not (0 <= self.lp_decimals <= MAX_DECIMALS):
            raise ValueError(f"lp_decimals must be in [0, {MAX_DECIMALS}]: {self.lp_decimals}")
        if not isinstance(self.log_level, str) or self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}: {self.log_level!r}")
        object.__setattr__(self, "log_level", self.log_level.upper())

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "AmmSettings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ConfigFileError(f"unknown settings keys: {', '.join(unknown)}")
        try:
            return cls(**dict(d))
        except (TypeError, ValueError) as exc:
            raise ConfigFileError(f"invalid settings: {exc}") from exc

    def with_env(self, env: Optional[Mapping[str, str]] = None) -> "AmmSettings":
        """Return a copy with any `FEEAMM_*` overrides applied."""
        env = os.environ if env is None else env
        overrides: dict[str, Any] = {}
        fee = _int_env(env, ENV_MAX_TRADE_FEE_BPS)
        if fee is not None:
            overrides["max_trade_fee_bps"] = fee
        decimals = _int_env(env, ENV_LP_DECIMALS)
        if decimals is not None:
            overrides["lp_decimals"] = decimals
        level = env.get(ENV_LOG_LEVEL)
        if level is not None and level.strip():
            overrides["log_level"] = level.strip()
        if not overrides:
            return self
        merged = {f.name: getattr(self, f.name) for f in fields(self)}
        merged.update(overrides)
        try:
            return AmmSettings(**merged)
        except (TypeError, ValueError) as exc:
            raise ConfigFileError(f"invalid environment override: {exc}") from exc


def _int_env(env: Mapping[str, str], name: str) -> Optional[int]:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip(), 10)
    except ValueError as exc:
        raise ConfigFileError(f"{name} must be an integer: {raw!r}") from exc


def _require_mapping(obj: Any, *, name: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise ConfigFileError(f"{name} must be an object")
    return obj


def _require_list(obj: Any, *, name: str) -> list[Any]:
    if not isinstance(obj, list):
        raise ConfigFileError(f"{name} must be a list")
    return obj


def _require_str(obj: Any, *, name: str) -> str:
    if not isinstance(obj, str) or not obj.strip():
        raise ConfigFileError(f"{name} must be a non-empty string")
    return obj.strip()


def _require_int(obj: Any, *, name: str) -> int:
    if not isinstance(obj, int) or isinstance(obj, bool):
        raise ConfigFileError(f"{name} must be an integer")
    return obj


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError(f"cannot read {path}: {exc}") from exc
    try:
        doc = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigFileError(f"{path} is not valid YAML: {exc}") from exc
    if doc is None:
        return {}
    return _require_mapping(doc, name=str(path))


def load_settings(path: Optional[Path] = None, *, env: Optional[Mapping[str, str]] = None) -> AmmSettings:
    """Resolve settings from defaults, an optional YAML file, then the environment."""
    settings = AmmSettings()
    if path is not None:
        doc = _read_yaml(Path(path))
        section = doc.get("settings")
        if section is not None:
            settings = AmmSettings.from_dict(_require_mapping(section, name="settings"))
    return settings.with_env(env)


def _parse_transfer_fee(obj: Any, *, name: str) -> TransferFee:
    d = _require_mapping(obj, name=name)
    unknown = sorted(set(d) - _FEE_KEYS)
    if unknown:
        raise ConfigFileError(f"{name} has unknown keys: {', '.join(unknown)}")
    epoch = _require_int(d.get("epoch", 0), name=f"{name}.epoch")
    bps = _require_int(d.get("basis_points"), name=f"{name}.basis_points")
    max_fee = d.get("maximum_fee")
    if max_fee is not None:
        max_fee = _require_int(max_fee, name=f"{name}.maximum_fee")
    try:
        return TransferFee(epoch=epoch, basis_points=bps, maximum_fee=max_fee)
    except ValueError as exc:
        raise ConfigFileError(f"{name}: {exc}") from exc


def _parse_fee_schedule(obj: Any, *, name: str) -> TransferFeeConfig:
    d = _require_mapping(obj, name=name)
    # Either a flat rate or an explicit older/newer schedule.
    if "older" in d or "newer" in d:
        if set(d) != {"older", "newer"}:
            raise ConfigFileError(f"{name} must contain exactly 'older' and 'newer'")
        older = _parse_transfer_fee(d["older"], name=f"{name}.older")
        newer = _parse_transfer_fee(d["newer"], name=f"{name}.newer")
        try:
            return TransferFeeConfig(older=older, newer=newer)
        except ValueError as exc:
            raise ConfigFileError(f"{name}: {exc}") from exc
    flat = _parse_transfer_fee(d, name=name)
    return TransferFeeConfig(older=flat, newer=flat)


def _parse_extensions(obj: Any, *, name: str) -> frozenset[Extension]:
    out = set()
    for i, raw in enumerate(_require_list(obj, name=name)):
        tag = _require_str(raw, name=f"{name}[{i}]")
        try:
            out.add(Extension(tag))
        except ValueError as exc:
            raise ConfigFileError(f"{name}[{i}] is not a known extension: {tag}") from exc
    return frozenset(out)


def parse_asset(obj: Any, *, name: str = "asset") -> AssetDescriptor:
    d = _require_mapping(obj, name=name)
    unknown = sorted(set(d) - _ASSET_KEYS)
    if unknown:
        raise ConfigFileError(f"{name} has unknown keys: {', '.join(unknown)}")

    identity = _require_str(d.get("identity"), name=f"{name}.identity")
    decimals = _require_int(d.get("decimals", 0), name=f"{name}.decimals")
    extensions = _parse_extensions(d.get("extensions", []), name=f"{name}.extensions")
    fee = None
    if d.get("transfer_fee") is not None:
        fee = _parse_fee_schedule(d["transfer_fee"], name=f"{name}.transfer_fee")
        extensions = extensions | {Extension.TRANSFER_FEE_CONFIG}
    freeze = d.get("freeze_authority")
    if freeze is not None:
        freeze = _require_str(freeze, name=f"{name}.freeze_authority")
    is_native = d.get("is_native", False)
    if not isinstance(is_native, bool):
        raise ConfigFileError(f"{name}.is_native must be a bool")

    try:
        return AssetDescriptor(
            identity=identity,
            decimals=decimals,
            extensions=extensions,
            transfer_fee=fee,
            freeze_authority=freeze,
            is_native=is_native,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigFileError(f"{name}: {exc}") from exc


def load_assets(path: Path) -> dict[str, AssetDescriptor]:
    """Read the `assets:` list of a YAML file, keyed by identity."""
    doc = _read_yaml(Path(path))
    items = _require_list(doc.get("assets"), name="assets")
    out: dict[str, AssetDescriptor] = {}
    for i, item in enumerate(items):
        desc = parse_asset(item, name=f"assets[{i}]")
        if desc.identity in out:
            raise ConfigFileError(f"assets[{i}] duplicates identity {desc.identity}")
        out[desc.identity] = desc
    logger.debug("loaded %d asset descriptors from %s", len(out), path)
    return out


def configure_logging(level: str = "INFO") -> None:
    """Install a basic stderr handler on the root logger."""
    if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
        raise ValueError(f"unknown log level: {level!r}")
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
