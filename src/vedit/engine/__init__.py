"""Turn engine, multi-turn loop and operation transcripts."""

from .loop import DEFAULT_COMPLETION_MESSAGE, TOOLS_UNSUPPORTED_MESSAGE, EditLoop
from .transcript import TranscriptEntry, TranscriptStore, load_transcript
from .turn import TurnAccumulator, fold_events, run_turn

__all__ = [
    "DEFAULT_COMPLETION_MESSAGE",
    "TOOLS_UNSUPPORTED_MESSAGE",
    "EditLoop",
    "TranscriptEntry",
    "TranscriptStore",
    "TurnAccumulator",
    "fold_events",
    "load_transcript",
    "run_turn",
]
