"""Read-only query selectors."""

from posting_engine.selectors.journal_selector import JournalDTO, JournalLineDTO, JournalSelector
from posting_engine.selectors.subledger_selector import (
    PartyBalanceDTO,
    SubledgerEntryDTO,
    SubledgerSelector,
)

__all__ = [
    "JournalDTO",
    "JournalLineDTO",
    "JournalSelector",
    "PartyBalanceDTO",
    "SubledgerEntryDTO",
    "SubledgerSelector",
]
