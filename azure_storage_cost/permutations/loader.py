"""Definition loader for the permutation catalogue.

Loads one YAML file per storage family from
azure_storage_cost/permutations/definitions.

The loader is strict:
- it validates required fields and known values (family, formula, meter roles)
- it merges family defaults into every permutation
- it renders everything into frozen dataclasses

If a definition is invalid, it raises ValueError with a readable message,
so CI/test runs fail fast.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..pricing.meters import METER_ROLES
from .types import FAMILIES, FORMULAS, BaselineRule, MeterTemplate, Permutation, SizeBracket

DEFINITIONS_DIR = Path(__file__).resolve().parent / "definitions"

_METER_FIELDS = ("service_name", "product_name", "sku_name", "tier", "redundancy", "meter_contains", "meter_excludes")


def _as_list(x: Any) -> List[Any]:
    if x is None:
        return []
    if isinstance(x, list):
        return x
    return [x]


def _require(obj: Dict[str, Any], key: str, *, ctx: str) -> Any:
    if key not in obj:
        raise ValueError(f"Missing required key '{key}' in {ctx}")
    return obj[key]


def _load_one(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping in {path}")
    return data


def _parse_roles(items: Any, *, ctx: str) -> frozenset:
    roles = frozenset(str(r).strip() for r in _as_list(items))
    unknown = sorted(roles - METER_ROLES)
    if unknown:
        raise ValueError(f"Unknown meter role(s) {unknown} in {ctx}")
    return roles


def _parse_baseline(obj: Any, *, ctx: str) -> BaselineRule:
    if obj is None:
        return BaselineRule()
    if isinstance(obj, (int, float)):
        return BaselineRule(kind="flat", value=float(obj))
    if not isinstance(obj, dict):
        raise ValueError(f"baseline rule must be a number or an object in {ctx}")
    kind = str(obj.get("kind") or "none").strip().lower()
    if kind not in ("none", "flat", "per_tib"):
        raise ValueError(f"Unknown baseline kind '{kind}' in {ctx}")
    return BaselineRule(kind=kind, value=float(obj.get("value") or 0.0), base=float(obj.get("base") or 0.0))


def _parse_brackets(items: Any, *, ctx: str) -> Tuple[SizeBracket, ...]:
    out: List[SizeBracket] = []
    last = 0.0
    for i, it in enumerate(_as_list(items)):
        bctx = f"{ctx}.brackets[{i}]"
        if not isinstance(it, list) or len(it) != 2:
            raise ValueError(f"bracket must be [name, max_gib] in {bctx}")
        name, max_gib = it
        if max_gib is not None:
            max_gib = float(max_gib)
            if max_gib <= last:
                raise ValueError(f"brackets must be strictly increasing in {bctx}")
            last = max_gib
        elif i != len(_as_list(items)) - 1:
            raise ValueError(f"only the last bracket may be open-ended in {bctx}")
        out.append(SizeBracket(name=str(name), max_gib=max_gib))
    return tuple(out)


def _merge_meter(*layers: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged.update({k: v for k, v in layer.items() if k in _METER_FIELDS})
    return merged


def _parse_meter(obj: Dict[str, Any], *, ctx: str) -> MeterTemplate:
    for key in ("service_name", "product_name", "sku_name"):
        if not obj.get(key):
            raise ValueError(f"Missing meter field '{key}' in {ctx}")
    return MeterTemplate(
        service_name=str(obj["service_name"]),
        product_name=str(obj["product_name"]),
        sku_name=str(obj["sku_name"]),
        tier=str(obj.get("tier") or "{tier}"),
        redundancy=None if obj.get("redundancy", "{redundancy}") is None else str(obj.get("redundancy", "{redundancy}")),
        meter_contains=tuple(str(x) for x in _as_list(obj.get("meter_contains"))),
        meter_excludes=tuple(str(x) for x in _as_list(obj.get("meter_excludes"))),
    )


def _build_permutation(family: str, raw: Dict[str, Any], family_meters: Dict[str, Any], *, ctx: str) -> Permutation:
    perm_id = int(_require(raw, "id", ctx=ctx))
    tier = str(_require(raw, "tier", ctx=ctx)).strip()
    formula = str(raw.get("formula") or "").strip()
    if formula not in FORMULAS:
        raise ValueError(f"Unknown formula '{formula}' in {ctx}")

    required = _parse_roles(_require(raw, "required_meters", ctx=ctx), ctx=f"{ctx}.required_meters")
    if not required:
        raise ValueError(f"required_meters cannot be empty in {ctx}")
    optional = _parse_roles(raw.get("optional_meters"), ctx=f"{ctx}.optional_meters") - required

    redundancy = raw.get("redundancy")
    template_vars = {
        "tier": tier,
        "redundancy": "" if redundancy is None else str(redundancy),
    }
    for k, v in raw.items():
        if isinstance(v, (str, int, float)) and k not in template_vars:
            template_vars[k] = str(v)

    perm_meters = raw.get("meters") or {}
    meters: Dict[str, MeterTemplate] = {}
    for role in sorted(required | optional):
        merged = _merge_meter(
            family_meters.get("default"),
            perm_meters.get("default"),
            family_meters.get(role),
            perm_meters.get(role),
        )
        meters[role] = _parse_meter(merged, ctx=f"{ctx}.meters.{role}")

    brackets = _parse_brackets(raw.get("brackets"), ctx=ctx)
    if formula == "fixed_tier" and not brackets:
        raise ValueError(f"fixed_tier formula requires brackets in {ctx}")

    cool = bool(raw.get("cool_access", False))
    double = bool(raw.get("double_encryption", False))
    if cool and double:
        raise ValueError(f"cool_access and double_encryption are mutually exclusive in {ctx}")

    return Permutation(
        family=family,
        id=perm_id,
        name=str(raw.get("name") or f"{family} {perm_id}"),
        tier=tier,
        redundancy=None if redundancy is None else str(redundancy),
        cool_access_enabled=cool,
        double_encryption_enabled=double,
        is_provisioned=bool(raw.get("is_provisioned", False)),
        formula=formula,
        required_meters=required,
        optional_meters=optional,
        included_throughput=_parse_baseline(raw.get("included_throughput"), ctx=f"{ctx}.included_throughput"),
        included_iops=_parse_baseline(raw.get("included_iops"), ctx=f"{ctx}.included_iops"),
        min_capacity_gib=float(raw.get("min_capacity_gib") or 0.0),
        brackets=brackets,
        description=str(raw.get("description") or ""),
        meters=meters,
        template_vars=template_vars,
    )


def load_family(path: Path) -> Tuple[str, bool, List[Tuple[Permutation, List[str]]]]:
    """Parse one family file.

    Returns (family, keyed_on_redundancy, [(permutation, tier_aliases), ...]).
    """
    data = _load_one(path)
    ctx = f"definition({path.name})"
    family = str(_require(data, "family", ctx=ctx)).strip()
    if family not in FAMILIES:
        raise ValueError(f"Unknown family '{family}' in {ctx}")
    keyed_on_redundancy = bool(data.get("keyed_on_redundancy", True))
    defaults = data.get("defaults") or {}
    family_meters = data.get("meters") or {}
    if not isinstance(family_meters, dict):
        raise ValueError(f"meters must be a mapping in {ctx}")

    out: List[Tuple[Permutation, List[str]]] = []
    seen_ids = set()
    for i, item in enumerate(_as_list(_require(data, "permutations", ctx=ctx))):
        pctx = f"{ctx}.permutations[{i}]"
        if not isinstance(item, dict):
            raise ValueError(f"permutation must be a mapping in {pctx}")
        raw = dict(defaults)
        raw.update(item)
        perm = _build_permutation(family, raw, family_meters, ctx=pctx)
        if perm.id in seen_ids:
            raise ValueError(f"Duplicate permutation id {perm.id} in {ctx}")
        if keyed_on_redundancy and not perm.redundancy:
            raise ValueError(f"redundancy is required for {family} in {pctx}")
        seen_ids.add(perm.id)
        aliases = [str(a) for a in _as_list(raw.get("aliases"))]
        out.append((perm, aliases))
    return family, keyed_on_redundancy, out


def load_definitions(definitions_dir: Optional[Path] = None) -> List[Tuple[str, bool, List[Tuple[Permutation, List[str]]]]]:
    base = definitions_dir or DEFINITIONS_DIR
    if not base.exists():
        raise ValueError(f"Permutation definitions directory not found: {base}")
    paths = sorted(p for p in base.iterdir() if p.is_file() and p.suffix.lower() in (".yaml", ".yml"))
    return [load_family(p) for p in paths]
