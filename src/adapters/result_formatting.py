"""Shared result formatting helpers.

Keeping formatting here prevents drift between CLI commands and keeps output
consistent regardless of where a match came from.
"""

from __future__ import annotations

from typing import Optional

from core.models import MatchResult


def short_id(value: str, head: int = 16, tail: int = 0) -> str:
    """Shorten long hex ids and invoices for display."""

    if len(value) <= head + tail + 3:
        return value
    if tail:
        return f"{value[:head]}...{value[-tail:]}"
    return f"{value[:head]}..."


def _format_plain(invoice: str, result: Optional[MatchResult]) -> str:
    if result is None:
        return f"No zap receipt found for {short_id(invoice, 30)}"

    lines = [
        f"Invoice:   {short_id(invoice, 30)}",
        f"Sender:    {result.sender}",
        f"Recipient: {result.recipient}",
        f"Event:     {result.subject_id or 'none (profile zap)'}",
        f"Comment:   {result.comment or 'none'}",
    ]
    return "\n".join(lines)


def _format_markdown(invoice: str, result: Optional[MatchResult]) -> str:
    def escape_md(value: str) -> str:
        for ch in r"*_[`":
            value = value.replace(ch, f"\\{ch}")
        return value

    if result is None:
        return f"No zap receipt found for `{short_id(invoice, 30)}`"

    lines = [
        f"**Invoice:** `{short_id(invoice, 30)}`",
        f"**Sender:** `{result.sender}`",
        f"**Recipient:** `{result.recipient}`",
    ]
    if result.subject_id:
        lines.append(f"**Event:** `{result.subject_id}`")
    else:
        lines.append("**Event:** none (profile zap)")
    if result.comment:
        lines.extend(["", escape_md(result.comment)])
    return "\n".join(lines)


def format_match(invoice: str, result: Optional[MatchResult], mode: str = "plain") -> str:
    """Return the lookup result formatted for the requested mode."""

    if mode == "plain":
        return _format_plain(invoice, result)
    if mode == "markdown":
        return _format_markdown(invoice, result)
    raise ValueError(f"Unsupported output format: {mode}")
