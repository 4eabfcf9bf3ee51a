from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
import os

from firestore_double.listeners import DELIVERY_AUTO, DELIVERY_MODES


DEFAULT_PROJECT_ID = "fake-project"
DEFAULT_DATABASE = "(default)"
DEFAULT_AUTO_ID_LENGTH = 20


class SettingsError(ValueError):
    """Raised when settings values are invalid."""


@dataclass(frozen=True)
class EmulatorSettings:
    project_id: str = DEFAULT_PROJECT_ID
    database: str = DEFAULT_DATABASE
    auto_id_length: int = DEFAULT_AUTO_ID_LENGTH
    id_pool: tuple[str, ...] = ()
    listener_delivery: str = DELIVERY_AUTO
    seed_path: str = ""


def _read_dotenv(dotenv_path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not dotenv_path.exists():
        return values

    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if key:
            values[key] = value
    return values


def _get_str(values: Mapping[str, str], key: str, default: str) -> str:
    value = values.get(key, default).strip()
    if not value:
        raise SettingsError(f"{key} must not be empty.")
    return value


def _get_int(values: Mapping[str, str], key: str, default: int) -> int:
    raw_value = values.get(key)
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise SettingsError(f"{key} must be integer: {raw_value}") from exc
    if value <= 0:
        raise SettingsError(f"{key} must be > 0: {value}")
    return value


def _get_choice(values: Mapping[str, str], key: str, default: str, choices: tuple[str, ...]) -> str:
    value = values.get(key, default).strip().lower() or default
    if value not in choices:
        raise SettingsError(f"{key} must be one of {', '.join(choices)}: {value}")
    return value


def _get_list(values: Mapping[str, str], key: str) -> tuple[str, ...]:
    raw_value = values.get(key, "")
    items = tuple(item.strip() for item in raw_value.split(",") if item.strip())
    for item in items:
        if "/" in item:
            raise SettingsError(f"{key} entries must not contain '/': {item}")
    if len(set(items)) != len(items):
        raise SettingsError(f"{key} must not contain duplicates: {raw_value}")
    return items


def load_settings(
    *,
    env: Mapping[str, str] | None = None,
    dotenv_path: str | Path = ".env",
) -> EmulatorSettings:
    """Load settings from .env and environment variables.

    Priority: OS environment > .env > default.
    """

    env_values = dict(env) if env is not None else dict(os.environ)
    dotenv_values = _read_dotenv(Path(dotenv_path))
    merged: dict[str, str] = {**dotenv_values, **env_values}

    return EmulatorSettings(
        project_id=_get_str(merged, "FIRESTORE_PROJECT_ID", DEFAULT_PROJECT_ID),
        database=_get_str(merged, "FIRESTORE_DATABASE", DEFAULT_DATABASE),
        auto_id_length=_get_int(merged, "FIRESTORE_DOUBLE_AUTO_ID_LENGTH", DEFAULT_AUTO_ID_LENGTH),
        id_pool=_get_list(merged, "FIRESTORE_DOUBLE_ID_POOL"),
        listener_delivery=_get_choice(
            merged,
            "FIRESTORE_DOUBLE_LISTENER_DELIVERY",
            DELIVERY_AUTO,
            DELIVERY_MODES,
        ),
        seed_path=merged.get("FIRESTORE_DOUBLE_SEED_PATH", "").strip(),
    )
