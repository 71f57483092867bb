#!/usr/bin/env python3
from __future__ import annotations

from pathlib import Path
from typing import TypeGuard

import yaml


REPO_ROOT = Path(__file__).resolve().parents[1]
CODES_RELPATH = Path("services/appclient/src/appclient/diagnostics/codes.yaml")
OUT_RELPATH = Path("docs/reference/diagnostic-codes.md")
SEVERITIES = {"error", "warn", "info"}


def _is_dict(value: object) -> TypeGuard[dict[object, object]]:
    return isinstance(value, dict)


def _as_dict(value: object) -> dict[str, object]:
    if not _is_dict(value):
        return {}
    return {str(k): v for k, v in value.items()}


def load_codes(path: Path) -> list[dict[str, str]]:
    data = _as_dict(yaml.safe_load(path.read_text(encoding="utf-8")) or {})
    if data.get("version") != 1:
        raise SystemExit(f"Unsupported diagnostics version: {data.get('version')}")
    raw_codes = data.get("codes")
    if not isinstance(raw_codes, list):
        raise SystemExit("Invalid codes.yaml: expected top-level 'codes' list")

    codes: list[dict[str, str]] = []
    for entry in raw_codes:
        if not _is_dict(entry):
            raise SystemExit("Invalid codes.yaml: entries must be mappings")
        item = {k: str(v or "").strip().replace("\n", " ") for k, v in _as_dict(entry).items()}
        if not item.get("code") or not item.get("rule"):
            raise SystemExit(f"Invalid diagnostic entry (missing required fields): {entry}")
        if item.get("severity") not in SEVERITIES:
            raise SystemExit(f"Invalid severity for {item['code']}: {item.get('severity')}")
        codes.append(item)
    return codes


def render(codes: list[dict[str, str]]) -> str:
    lines = [
        "> **Generated file. Do not edit directly.**",
        "> Run: `python scripts/generate_diagnostic_codes.py`",
        "",
        "# Diagnostic codes",
        "",
        f"This page is generated from `{CODES_RELPATH.as_posix()}`.",
        "",
        "| Code | Severity | Rule | Message | Hint |",
        "|---|---|---|---|---|",
    ]
    for item in sorted(codes, key=lambda x: x["code"]):
        lines.append(
            f"| `{item['code']}` | `{item['severity']}` | `{item['rule']}` "
            f"| {item.get('message', '')} | {item.get('hint', '')} |"
        )
    return "\n".join(lines) + "\n"


def generate(repo_root: Path = REPO_ROOT) -> Path:
    src = repo_root / CODES_RELPATH
    if not src.exists():
        raise SystemExit(f"Diagnostics source not found: {src}")
    out = repo_root / OUT_RELPATH
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(render(load_codes(src)), encoding="utf-8")
    print(f"Generated {out}")
    return out


if __name__ == "__main__":
    generate()
