from __future__ import annotations

from importlib import resources
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import RootModel

from cyberguard.models import ExhaustionAction, PollPolicy, Variant


class PollPolicyTable(RootModel[dict[Variant, PollPolicy]]):
    def for_variant(self, variant: Variant) -> PollPolicy:
        try:
            return self.root[variant]
        except KeyError as exc:
            raise ValueError(f"No poll policy configured for variant: {variant.value}") from exc


def _keyed_by_variant(parsed: object) -> dict[Variant, object]:
    if not isinstance(parsed, dict):
        raise ValueError("Poll policy file must be a mapping of variant -> policy")
    by_name = {v.value.lower(): v for v in Variant}
    out: dict[Variant, object] = {}
    for key, value in parsed.items():
        variant = by_name.get(str(key).strip().lower())
        if variant is None:
            raise ValueError(f"Unknown variant in poll policy file: {key}")
        out[variant] = value
    return out


def load_builtin_policies() -> PollPolicyTable:
    data = resources.files("cyberguard.data").joinpath("poll_policies.yaml").read_text(encoding="utf-8")
    return PollPolicyTable.model_validate(_keyed_by_variant(yaml.safe_load(data)))


def load_policy_file(path: Path) -> PollPolicyTable:
    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    table = PollPolicyTable.model_validate(_keyed_by_variant(parsed))
    missing = [v.value for v in Variant if v not in table.root]
    if missing:
        raise ValueError(f"Poll policy file is missing variants: {', '.join(missing)}")
    hash_policy = table.for_variant(Variant.HASH)
    if hash_policy.max_attempts != 1 or hash_policy.on_exhausted is not ExhaustionAction.NONE:
        raise ValueError("Hash policy must be a single lookup: max_attempts 1, on_exhausted none")
    return table


def policy_summary(table: PollPolicyTable) -> str:
    parts = []
    for variant in Variant:
        policy = table.for_variant(variant)
        parts.append(
            f"{variant.value}: {policy.max_attempts} x {policy.delay_seconds:g}s -> {policy.on_exhausted.value}"
        )
    return "; ".join(parts)
