# ====================================================================== #
# torus_indexer/utils/pretty_logs.py
# Rich-based pretty logging for block and reconciliation summaries.
# ====================================================================== #

from __future__ import annotations

from typing import Any, Iterable, List, Tuple

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from torus_indexer.config import LOG_TOP_N, MASK_SS58, PRETTY_LOGS


def mask(ss58: str) -> str:
    if not MASK_SS58:
        return ss58
    if not ss58 or len(ss58) < 10:
        return ss58
    return f"{ss58[:5]}…{ss58[-4:]}"


class Pretty:
    def __init__(self, enable: bool = True):
        self.enable = bool(enable)
        self.console = Console(log_path=False, highlight=False)

    def rule(self, title: str = ""):
        if not self.enable:
            return
        self.console.rule(Text.from_markup(title))

    def log(self, msg: str):
        if self.enable:
            self.console.log(msg)

    def kv_panel(self, title: str, items: Iterable[Tuple[str, Any]], style: str = "bold"):
        if not self.enable:
            return
        body = "\n".join([f"[white]{k}[/white]: {v}" for k, v in items])
        self.console.print(Panel(body, title=title, border_style=style))

    def table(self, title: str, columns: List[str], rows: List[List[Any]], caption: str | None = None):
        if not self.enable:
            return
        t = Table(title=title, box=box.MINIMAL_DOUBLE_HEAD, show_lines=False)
        for c in columns:
            t.add_column(c)
        for r in rows[:LOG_TOP_N]:
            t.add_row(*[str(x) for x in r])
        if caption:
            t.caption = caption
        self.console.print(t)

    # Convenience formatters
    def show_block(self, height: int, events: int, extrinsics: int, handled: dict):
        items = [("extrinsics", extrinsics), ("events", events)]
        items.extend((name, count) for name, count in sorted(handled.items()) if count)
        self.kv_panel(f"Block #{height}", items, style="cyan")

    def show_accounts_reconciled(self, summary):
        self.kv_panel(
            f"Accounts reconciled @ #{summary.block}",
            [
                ("accounts", summary.accounts_seen),
                ("created", summary.created),
                ("updated", summary.updated),
                ("free", summary.total_free),
                ("staked", summary.total_staked),
            ],
            style="green",
        )

    def show_delegations_reconciled(self, summary):
        self.kv_panel(
            f"Delegations reconciled @ #{summary.block}",
            [
                ("pairs", summary.pairs_seen),
                ("upserted", summary.upserted),
                ("pruned", summary.pruned),
                ("delegated", summary.total_delegated),
            ],
            style="green",
        )

    def show_top_accounts(self, accounts: List[Any]):
        rows = sorted(accounts, key=lambda a: a.balance_total, reverse=True)
        rows = [[mask(a.address), a.balance_free, a.balance_staked, a.balance_total] for a in rows]
        if rows:
            self.table("Top accounts", ["Address", "Free", "Staked", "Total"], rows)

    def show_run_stats(self, stats: dict):
        self.kv_panel("Indexer run", list(stats.items()), style="bold magenta")


pretty = Pretty(enable=PRETTY_LOGS)
