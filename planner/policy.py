import os
from pathlib import Path
from typing import Any

import yaml

POLICY_PATH = Path(__file__).resolve().parent.parent / "config" / "policy.yaml"


def policy_path() -> Path:
    override = os.getenv("HOMEPLAN_POLICY")
    return Path(override) if override else POLICY_PATH


def load_policy() -> dict:
    path = policy_path()
    if path.exists():
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return {}


def threshold(policy: dict, key: str, default: Any) -> Any:
    return (policy.get("thresholds") or {}).get(key, default)
