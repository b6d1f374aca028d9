from vb100.client.results_client import ResultsClient
from vb100.client.autosave import RowEditor, DebouncedScheduler

__all__ = ["ResultsClient", "RowEditor", "DebouncedScheduler"]
