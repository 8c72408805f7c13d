from flash_sale_loadgen.core.checks import RunSummary


def _fmt_ms(v):
    return "-" if v is None else f"{v:.2f}ms"


def render_text(summary: RunSummary) -> str:
    """渲染成终端可读的检查通过率表"""
    lines = ["", "=" * 60, "Flash sale load test summary", "=" * 60]

    lines.append(
        f"vus={summary.vus} duration={summary.duration_s:g}s "
        f"elapsed={summary.elapsed_s:.1f}s fixtures={summary.fixtures} "
        f"key_pool={summary.key_pool_size}"
    )
    if summary.fixtures == 0:
        lines.append("!! no fixture users: every iteration was a no-op")

    lines.append("")
    lines.append("checks:")
    if not summary.checks:
        lines.append("  (none)")
    width = max((len(name) for name in summary.checks), default=0)
    for name, c in summary.checks.items():
        mark = "✓" if c.fails == 0 else "✗"
        lines.append(
            f"  {mark} {name.ljust(width)}  {c.rate * 100:6.2f}%  "
            f"✓ {c.passes}  ✗ {c.fails}"
        )

    lines.append("")
    lines.append("outcomes:")
    for outcome, count in sorted(summary.outcomes.items(), key=lambda kv: -kv[1]):
        lines.append(f"  {outcome}: {count}")

    lines.append("")
    lines.append(
        f"iterations={summary.iterations} no-op={summary.noop_iterations} "
        f"replayed_keys={summary.replayed_keys} poll_timeouts={summary.poll_timeouts} "
        f"errored={summary.errored_iterations}"
    )
    for label, stats in (("submit", summary.submit_latency), ("poll", summary.poll_latency)):
        lines.append(
            f"{label} latency: n={stats.get('count', 0)} avg={_fmt_ms(stats.get('avg_ms'))} "
            f"p95={_fmt_ms(stats.get('p95_ms'))} max={_fmt_ms(stats.get('max_ms'))}"
        )
    if not summary.drained:
        lines.append("!! graceful stop expired, some virtual users were cancelled")

    return "\n".join(lines)
