"""Notification text for triggered alerts and volatility moves (Markdown)."""

from pricewatch.models import Alert, AlertAnalysis, AlertDirection


def format_number(value: float) -> str:
    """Thousands separators; 6 decimals below 1, otherwise 2."""
    if value < 1:
        return f"{value:,.6f}"
    return f"{value:,.2f}"


def format_trigger_message(alert: Alert, analysis: AlertAnalysis) -> str:
    symbol = alert.symbol
    trigger_price = alert.trigger_price if alert.trigger_price is not None else alert.target_price
    change_amount = abs(trigger_price - alert.original_price)
    percent = abs(analysis.percent_change)
    up = analysis.direction is AlertDirection.UP
    sign = "+" if up else "-"

    lines = [
        f"🚨 **{symbol} ALERT**",
        "",
        f"{'📈' if up else '📉'} **{symbol}** hit your target!",
        f"**${format_number(trigger_price)}** (Target: ${format_number(alert.target_price)})",
        f"{sign}{percent:.2f}% ({sign}${change_amount:.2f})",
        "",
    ]

    if analysis.time_to_trigger > 3600:
        lines.append(f"⏱ Triggered after {analysis.time_to_trigger / 3600:.1f}h")
        lines.append("")

    context = analysis.market_context
    if context is not None and context.price_change_24h is not None:
        change_24h = context.price_change_24h
        if abs(change_24h) > 5:
            emoji = "📈" if change_24h > 0 else "📉"
            lines.append(f"{emoji} 24h: {'+' if change_24h > 0 else ''}{change_24h:.1f}%")

    if analysis.unusual_activity:
        lines.append(f"⚠️ {analysis.unusual_activity[0]}")

    if analysis.sentiment:
        emoji = "🐂" if analysis.sentiment == "bullish" else "🐻"
        lines.append(f"{emoji} {analysis.sentiment.capitalize()} market sentiment")

    lines.append("")
    if up:
        lines.append("💡 Target reached! Consider taking profits or setting a trailing stop.")
    else:
        lines.append("💡 Target reached! Review your position and risk management.")
    return "\n".join(lines)


def format_volatility_message(
    symbol: str, percent_change: float, current_price: float, previous_price: float
) -> str:
    up = percent_change > 0
    return "\n".join([
        "🚨 **VOLATILITY ALERT**",
        "",
        f"{'📈' if up else '📉'} **{symbol}** {'UP' if up else 'DOWN'} {abs(percent_change):.1f}%",
        "",
        f"**${format_number(current_price)}**",
        f"(was ${format_number(previous_price)})",
        f"Change: {'+' if up else '-'}${abs(current_price - previous_price):.2f}",
        "",
        f"💡 /price {symbol} for details",
    ])


def format_alert_list(alerts: list[Alert]) -> str:
    """Summary of a chat's alerts: all active ones, the last three triggered."""
    if not alerts:
        return "📋 **No alerts set**"

    active = [a for a in alerts if a.is_active]
    triggered = [a for a in alerts if not a.is_active]
    lines = ["📋 **Your Alert Status**", ""]

    if active:
        lines.append(f"🔔 **Active Alerts ({len(active)})**")
        for i, alert in enumerate(active, 1):
            arrow = "📈 ABOVE" if alert.direction is AlertDirection.UP else "📉 BELOW"
            lines.append(f"{i}. **{alert.symbol}** {arrow} ${alert.target_price:.2f}")
        lines.append("")
    else:
        lines.extend(["🔔 **No active alerts**", ""])

    if triggered:
        lines.append(f"✅ **Triggered Alerts ({len(triggered)})**")
        for i, alert in enumerate(triggered[-3:], 1):
            price = f"{alert.trigger_price:.2f}" if alert.trigger_price is not None else "Unknown"
            lines.append(f"{i}. **{alert.symbol}** triggered at ${price}")
    return "\n".join(lines).rstrip()
