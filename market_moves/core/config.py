"""Configuration module for loading project settings and environment variables."""

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv

from market_moves.core.errors import ConfigError
from market_moves.models.datatypes import Instrument

# Load environment variables from .env file
load_dotenv()

NEWS_API_KEY_ENV = "FINNHUB_API_KEY"


def load_config(config_path: str | Path = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from the specified YAML file.

    Args:
        config_path (str | Path): Path to the configuration file. Defaults to "config.yaml".

    Returns:
        Dict[str, Any]: A dictionary containing the configuration settings.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_file, "r", encoding="utf-8") as file:
        config_data = yaml.safe_load(file)

    if not config_data:
        raise ValueError(f"Configuration file {config_path} is empty or invalid.")

    return config_data


def load_instruments(config: Dict[str, Any]) -> List[Instrument]:
    """
    Build the base instrument list from the ``instruments`` config section.

    Args:
        config (Dict[str, Any]): Parsed configuration.

    Returns:
        List[Instrument]: Instruments in configuration order.

    Raises:
        ConfigError: If an entry lacks ``id``/``symbol`` or an id repeats.
    """
    instruments: List[Instrument] = []
    seen = set()
    for entry in config.get("instruments") or []:
        if not isinstance(entry, dict) or not entry.get("id") or not entry.get("symbol"):
            raise ConfigError(f"Instrument entry needs 'id' and 'symbol': {entry!r}")
        instrument_id = str(entry["id"])
        if instrument_id in seen:
            raise ConfigError(f"Duplicate instrument id: {instrument_id}")
        seen.add(instrument_id)
        instruments.append(
            Instrument(
                id=instrument_id,
                name=str(entry.get("name") or instrument_id),
                symbol=str(entry["symbol"]),
                unit=str(entry.get("unit") or ""),
                news_symbol=entry.get("news_symbol") or None,
            )
        )
    return instruments


def get_news_api_key() -> str:
    """Return the news provider API key, or an empty string when unset."""
    return os.getenv(NEWS_API_KEY_ENV, "").strip()
