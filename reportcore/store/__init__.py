"""Result store for the current report run."""

from reportcore.store.store import UNSET_LABEL_VALUE, ResultStore

__all__ = [
    "UNSET_LABEL_VALUE",
    "ResultStore",
]
