from __future__ import annotations

from typing import Any, Iterable, List

from ..analysis.forecast import CostForecast


def _md_escape(v: Any) -> str:
    s = "" if v is None else str(v)
    # Escape pipes so Markdown tables don't break
    return s.replace("|", "\\|").replace("\n", " ").strip()


def _money(v: Any) -> str:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return ""
    return f"{f:,.2f}"


def _num(v: Any) -> str:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return ""
    if abs(f) >= 1_000_000:
        return f"{f:,.0f}"
    if abs(f) >= 1_000:
        return f"{f:,.2f}"
    return f"{f:.4g}"


def _pct(v: Any) -> str:
    try:
        return f"{float(v):.1f}%"
    except (TypeError, ValueError):
        return ""


def render_estimate_table(estimate, currency: str = "USD") -> str:
    """Component breakdown of one CostEstimate as a Markdown table."""
    out: List[str] = []
    title = estimate.resource_name or estimate.resource_id or "resource"
    out.append(f"### {_md_escape(title)}\n")
    perm = f"{estimate.family}:{estimate.permutation_id}" if estimate.permutation_id is not None else "-"
    out.append(
        f"Permutation: `{_md_escape(perm)}` {_md_escape(estimate.permutation_name)} | "
        f"Status: **{_md_escape(estimate.status)}** | Confidence: {estimate.confidence:.0f}%\n"
    )

    if not estimate.components:
        for err in estimate.errors:
            out.append(f"- {_md_escape(err)}")
        return "\n".join(out)

    pct = estimate.totals.percentages if estimate.totals is not None else {}
    out.append("| Component | Meter | Quantity | Unit Price | Unit | Cost | Share | Estimated | Notes |")
    out.append("|---|---|---:|---:|---|---:|---:|---|---|")
    for c in estimate.components:
        out.append(
            "| {ct} | {mk} | {q} | {up} | {uom} | {cost} | {share} | {est} | {notes} |".format(
                ct=_md_escape(c.component_type),
                mk=_md_escape(c.meter_key),
                q=_num(c.quantity),
                up=_num(c.unit_price),
                uom=_md_escape(c.unit_of_measure),
                cost=_money(c.cost_for_period),
                share=_pct(pct.get(c.component_type, 0.0)),
                est=("stale" if c.stale else "yes") if c.is_estimated else "actual",
                notes=_md_escape(c.description),
            )
        )
    if estimate.totals is not None:
        t = estimate.totals
        out.append(
            f"\n**Total ({t.period_days:g} days):** {_money(t.total_for_period)} {currency} "
            f"({_money(t.per_day)} {currency}/day)"
        )
    for w in estimate.warnings:
        out.append(f"- ⚠️ {_md_escape(w)}")
    return "\n".join(out)


def render_batch_table(estimates: Iterable[Any], currency: str = "USD") -> str:
    rows = [
        "| Resource | Family | Region | Permutation | Status | Confidence | Total | Per Day |",
        "|---|---|---|---|---|---:|---:|---:|",
    ]
    for e in estimates:
        per_day = e.totals.per_day if e.totals is not None else None
        rows.append(
            "| {name} | {fam} | {reg} | {perm} | {status} | {conf} | {total} | {day} |".format(
                name=_md_escape(e.resource_name or e.resource_id),
                fam=_md_escape(e.family),
                reg=_md_escape(e.region),
                perm=_md_escape(e.permutation_name or "-"),
                status=_md_escape(e.status),
                conf=f"{e.confidence:.0f}%",
                total=f"{_money(e.total_for_period)} {currency}" if e.ok else "-",
                day=f"{_money(per_day)} {currency}" if per_day is not None else "-",
            )
        )
    return "\n".join(rows)


def render_forecast_table(fc: CostForecast, currency: str = "USD") -> str:
    rows = [
        f"| Forecast ({fc.horizon_days} days) | Value |",
        "|---|---:|",
        f"| Low | {_money(fc.low_estimate)} {currency} |",
        f"| Mid | {_money(fc.mid_estimate)} {currency} |",
        f"| High | {_money(fc.high_estimate)} {currency} |",
        f"| Trend | {_md_escape(fc.trend)} |",
        f"| Daily growth | {fc.daily_growth_rate_percent:+.2f}% |",
        f"| Mean daily cost | {_money(fc.mean_daily_cost)} {currency} |",
        f"| Std deviation | {_money(fc.standard_deviation)} |",
        f"| Coefficient of variation | {fc.coefficient_of_variation:.3f} |",
        f"| Confidence | {fc.confidence_percent:.0f}% ({_md_escape(fc.confidence_level)}) |",
        f"| Samples | {fc.sample_count} |",
    ]
    if fc.risk_factors:
        rows.append("")
        rows.append("**Risk factors**")
        for r in fc.risk_factors:
            rows.append(f"- {_md_escape(r)}")
    return "\n".join(rows)
