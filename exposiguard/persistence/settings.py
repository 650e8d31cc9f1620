from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import orjson

from exposiguard.core.config import AmbientSettings, StoreConfig


@dataclass
class SettingsBundle:
    store_config: StoreConfig = field(default_factory=StoreConfig)
    ambient: AmbientSettings = field(default_factory=AmbientSettings)
    active_measure_pack: str = "lte"


def _known_fields(cls, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def save_settings(bundle: SettingsBundle, path: Path) -> None:
    payload = {
        "store_config": asdict(bundle.store_config),
        "ambient": asdict(bundle.ambient),
        "active_measure_pack": bundle.active_measure_pack,
    }
    path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))


def load_settings(path: Path) -> SettingsBundle:
    data = orjson.loads(path.read_bytes())
    return SettingsBundle(
        store_config=StoreConfig(**_known_fields(StoreConfig, data.get("store_config", {}))),
        ambient=AmbientSettings(**_known_fields(AmbientSettings, data.get("ambient", {}))),
        active_measure_pack=data.get("active_measure_pack", "lte"),
    )
