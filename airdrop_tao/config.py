"""
Run configuration for an airdrop.

Values come from (lowest to highest precedence) the defaults below, an
optional TOML file with a [distribution] table, and CLI flags.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

# Environment variable holding the signing secret (mnemonic, SURI or hex seed).
SIGNING_KEY_ENV = "AIRDROP_PRIVATE_KEY"

NATIVE_TOKEN = "TAO"


class ConfigurationError(ValueError):
    """Raised for problems that must abort a run before anything is submitted."""


@dataclass(frozen=True)
class DistributionConfig:
    distribution_file: str = "airdrop.csv"
    network: str = "finney"
    token: Optional[int] = None  # None -> native TAO, int -> Assets pallet id
    batch_size: int = 10
    confirmations: int = 3
    pause_seconds: float = 120
    output_file: str = "completed_airdrops.csv"
    delimiter: str = ","
    decimals: int = 9
    symbol: str = NATIVE_TOKEN
    confirmation_timeout: float = 600
    poll_interval: float = 6
    keep_alive: bool = True

    def validate(self) -> "DistributionConfig":
        """Check value types and ranges. Returns self so calls can be chained."""
        for name, kinds in _FIELD_TYPES.items():
            value = getattr(self, name)
            if isinstance(value, bool) and bool not in kinds or not isinstance(value, kinds):
                expected = " or ".join(k.__name__ for k in kinds)
                raise ConfigurationError(
                    f"{name} must be of type {expected}, got {type(value).__name__} {value!r}"
                )
        if self.batch_size < 1:
            raise ConfigurationError(
                f"batch_size must be a positive integer, got {self.batch_size!r}"
            )
        if self.confirmations < 1:
            raise ConfigurationError(
                f"confirmations must be a positive integer, got {self.confirmations!r}"
            )
        if self.pause_seconds < 0:
            raise ConfigurationError("pause_seconds must not be negative")
        if self.decimals < 0:
            raise ConfigurationError("decimals must not be negative")
        if self.confirmation_timeout <= 0:
            raise ConfigurationError("confirmation_timeout must be positive")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")
        if len(self.delimiter) != 1:
            raise ConfigurationError(
                f"delimiter must be a single character, got {self.delimiter!r}"
            )
        return self

    def with_overrides(self, **overrides: Any) -> "DistributionConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "token" in changes:
            changes["token"] = parse_token(changes["token"])
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DistributionConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        values = dict(data)
        if "token" in values:
            values["token"] = parse_token(values["token"])
        return cls(**values)

    @classmethod
    def from_toml(cls, path: str | Path) -> "DistributionConfig":
        path = Path(path)
        try:
            data = tomllib.loads(path.read_text())
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {path}")
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {path}: {e}")
        return cls.from_mapping(data.get("distribution", {}))


_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "distribution_file": (str,),
    "network": (str,),
    "batch_size": (int,),
    "confirmations": (int,),
    "pause_seconds": (int, float),
    "output_file": (str,),
    "delimiter": (str,),
    "decimals": (int,),
    "symbol": (str,),
    "confirmation_timeout": (int, float),
    "poll_interval": (int, float),
    "keep_alive": (bool,),
}


def parse_token(value: Any) -> Optional[int]:
    """Normalize a token identifier: native TAO is None, assets are ints."""
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        asset_id = value
    else:
        text = str(value).strip()
        if text == "" or text.upper() == NATIVE_TOKEN:
            return None
        if not text.isdigit():
            raise ConfigurationError(
                f"token must be '{NATIVE_TOKEN}' or a numeric asset id, got {value!r}"
            )
        asset_id = int(text)
    if asset_id < 0:
        raise ConfigurationError(f"asset id must not be negative, got {asset_id}")
    return asset_id


def load_signing_secret(
    env_var: str = SIGNING_KEY_ENV, environ: Optional[Mapping[str, str]] = None
) -> str:
    """Read the signing secret from the environment."""
    if environ is None:
        environ = os.environ
    secret = environ.get(env_var, "").strip()
    if not secret:
        raise ConfigurationError(
            f"No signing key defined. Set the {env_var} environment variable."
        )
    return secret
