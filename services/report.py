"""
Tabular and text reports over ledger data.
"""

from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from services.portfolio import PortfolioSummary

HOLDING_COLUMNS = ['symbol', 'asset_type', 'quantity', 'average_price', 'updated_at']
TRANSACTION_COLUMNS = [
    'id', 'transaction_date', 'symbol', 'asset_type', 'transaction_type',
    'quantity', 'price_per_unit', 'total_amount'
]


def holdings_to_frame(rows: Sequence[Any], columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Build a DataFrame from Holding or Transaction rows for display.
    Decimal columns keep their Decimal values (object dtype).
    """
    if columns is None:
        columns = TRANSACTION_COLUMNS if rows and hasattr(rows[0], 'transaction_type') else HOLDING_COLUMNS
    records = [{col: getattr(row, col) for col in columns} for row in rows]
    return pd.DataFrame.from_records(records, columns=columns)


def format_portfolio_report(summary: PortfolioSummary,
                            concentration: Optional[Dict[str, Any]] = None) -> str:
    """
    Format a portfolio report for display.

    Args:
        summary: PortfolioSummary from PortfolioQueryService.get_summary
        concentration: Result of PortfolioQueryService.check_concentration_risk

    Returns:
        Formatted report string
    """
    data = summary.to_dict()

    def show(value: Optional[str], suffix: str = "") -> str:
        return f"{value}{suffix}" if value is not None else "unknown"

    lines = [
        "=" * 60,
        "PORTFOLIO SUMMARY",
        "=" * 60,
        "",
        f"Holdings:                  {data['totalHoldings']}",
        f"Total Invested:            ${data['totalInvested']}",
        f"Current Value:             {show(data['totalCurrentValue'])}",
        f"Gain/Loss:                 {show(data['totalGainLoss'])}",
        f"Gain/Loss %:               {show(data['totalGainLossPercent'], '%')}",
    ]

    if summary.unpriced_symbols:
        lines.append(f"Unpriced:                  {', '.join(summary.unpriced_symbols)}")

    if summary.positions:
        lines.append("")
        lines.append("POSITIONS")
        lines.append("-" * 40)
        frame = pd.DataFrame.from_records([p.to_dict() for p in summary.positions])
        lines.append(frame.to_string(index=False))

    if concentration is not None:
        lines.append("")
        lines.append("CONCENTRATION ANALYSIS")
        lines.append("-" * 40)
        lines.append(f"Total Positions:           {concentration['total_positions']}")
        lines.append(f"Largest Position:          {concentration['largest_position_pct']:.1f}%")
        lines.append(f"Max Recommended:           {concentration['max_recommended_position_pct']:.1f}%")

        if concentration['warnings']:
            lines.append("")
            lines.append("WARNINGS:")
            for warning in concentration['warnings']:
                marker = "[HIGH]" if warning['severity'] == 'high' else "[MEDIUM]"
                lines.append(f"  {marker} {warning['message']}")
        else:
            lines.append("  No concentration risks detected")

    lines.append("")
    lines.append("=" * 60)

    return "\n".join(lines)
