"""Report orchestrators: poll for a generated report, then fetch its PDF."""

from finbridge.reports.orchestrators import (
    get_asset_report,
    get_base_report,
    get_first_statement,
    get_income_insights,
    get_partner_insights,
)

__all__ = [
    "get_asset_report",
    "get_base_report",
    "get_first_statement",
    "get_income_insights",
    "get_partner_insights",
]
