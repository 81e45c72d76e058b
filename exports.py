import csv
import io
import json
from datetime import datetime
from typing import Union

from models import NFTReport, WalletReport
from utils import format_currency

Report = Union[WalletReport, NFTReport]


def _summary_rows(report: Report) -> list[tuple[str, str]]:
    if isinstance(report, WalletReport):
        score = report.wallet_score or {}
        return [
            ("Wallet Address", report.wallet_address),
            ("NFT Holdings", str(len(report.nft_holdings))),
            ("ERC-20 Holdings", str(len(report.erc20_holdings))),
            ("Token Balances", str(len(report.defi_holdings))),
            ("Total Asset Value (USD)", format_currency(report.total_assets_value)),
            ("Wallet Score", str(score.get("wallet_score", "N/A"))),
            ("Classification", str(score.get("classification", "N/A"))),
        ]

    metadata = report.collection_metadata or {}
    analytics = report.collection_analytics or {}
    diff = report.floor_vs_estimate_diff_percent
    return [
        ("Contract Address", report.contract_address),
        ("Token ID", report.token_id or "N/A"),
        ("Collection", str(metadata.get("collection_name") or metadata.get("collection") or "N/A")),
        ("Floor Price (USD)", str(analytics.get("floor_price_usd", "N/A"))),
        ("Estimate vs Floor", f"{diff:.2f}%" if diff is not None else "N/A"),
        ("Recommendation", report.recommendation),
    ]


def _table(report: Report) -> tuple[str, list[str], list[list]]:
    """Title, header and rows of the report's main table."""
    if isinstance(report, WalletReport):
        header = ["Token", "Symbol", "Quantity", "Value (USD)"]
        rows = [
            [
                t.get("token_name", ""),
                t.get("token_symbol", ""),
                t.get("quantity", ""),
                t.get("token_value_usd", t.get("usd_value", "")),
            ]
            for t in report.defi_holdings or report.erc20_holdings
        ]
        return "TOKEN HOLDINGS", header, rows

    header = ["Date", "Volume", "Sales", "Transactions", "Assets"]
    rows = [
        [p.date, p.volume, p.sales, p.transactions, p.assets]
        for p in report.collection_trends
    ]
    return "COLLECTION TRENDS (30d)", header, rows


def _title(report: Report) -> str:
    if isinstance(report, WalletReport):
        return "WALLET REPORT"
    return "NFT ANALYSIS REPORT"


def to_csv(report: Report) -> bytes:
    """Export a report to CSV."""
    out = io.StringIO()
    w = csv.writer(out)

    w.writerow([_title(report)])
    w.writerow(["Generated", datetime.now().strftime("%Y-%m-%d %H:%M:%S")])
    w.writerow([])

    w.writerow(["SUMMARY"])
    for label, value in _summary_rows(report):
        w.writerow([label, value])
    w.writerow([])

    title, header, rows = _table(report)
    w.writerow([title])
    w.writerow(header)
    w.writerows(rows)

    return out.getvalue().encode("utf-8")


def to_json(report: Report) -> bytes:
    """Export a report as formatted JSON."""
    return json.dumps(report.model_dump(by_alias=True), indent=2, default=str).encode("utf-8")


def to_excel(report: Report) -> bytes:
    """Export a report to a formatted Excel workbook."""
    import openpyxl
    from openpyxl.styles import Alignment, Font, PatternFill
    from openpyxl.utils import get_column_letter

    wb = openpyxl.Workbook()

    # ── Summary Sheet ─────────────────────────────────────────────────
    ws = wb.active
    ws.title = "Summary"

    accent = PatternFill(start_color="f97316", end_color="f97316", fill_type="solid")
    dark = PatternFill(start_color="171717", end_color="171717", fill_type="solid")
    white_bold = Font(bold=True, color="FFFFFF")
    bold = Font(bold=True)

    ws.merge_cells("A1:E1")
    ws["A1"] = _title(report).title()
    ws["A1"].font = Font(bold=True, size=16, color="FFFFFF")
    ws["A1"].fill = accent
    ws["A1"].alignment = Alignment(horizontal="center")

    rows = [("Generated", datetime.now().strftime("%Y-%m-%d %H:%M:%S")), ("", "")]
    rows += _summary_rows(report)
    for i, (label, value) in enumerate(rows, 3):
        ws[f"A{i}"] = label
        ws[f"A{i}"].font = bold
        ws[f"B{i}"] = value

    # ── Detail Sheet ──────────────────────────────────────────────────
    title, header, table_rows = _table(report)
    ws2 = wb.create_sheet(title.split(" (")[0].title()[:31])
    for col, h in enumerate(header, 1):
        cell = ws2.cell(row=1, column=col, value=h)
        cell.font = white_bold
        cell.fill = dark

    for i, row in enumerate(table_rows, 2):
        for col, value in enumerate(row, 1):
            ws2.cell(row=i, column=col, value=value)

    # Auto-fit column widths
    for sheet in [ws, ws2]:
        for col in sheet.columns:
            max_len = max(len(str(cell.value or "")) for cell in col)
            sheet.column_dimensions[get_column_letter(col[0].column)].width = min(max_len + 3, 45)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
