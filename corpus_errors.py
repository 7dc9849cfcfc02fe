"""
Corpus Errors — the failure kinds a batch run can fold into its report.

Every per-file failure is raised as one of these and caught at the file
boundary by the orchestrator; none of them aborts a batch.
"""


class CorpusError(Exception):
    """Base class. `kind` is the name that appears in the report."""
    kind = "CorpusError"

    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = str(path) if path is not None else None

    def to_dict(self):
        return {"file": self.path, "kind": self.kind, "message": str(self)}


class ParseError(CorpusError):
    """Malformed JSON. The file is skipped and left untouched."""
    kind = "ParseError"


class UnknownVariant(CorpusError):
    """Record shape matches no known legacy schema. Never guessed."""
    kind = "UnknownVariant"


class MissingSourceAsset(CorpusError):
    """Image referenced by a legacy record is not on disk."""
    kind = "MissingSourceAsset"


class OrphanReference(CorpusError):
    """Reference that cannot be resolved against the current store."""
    kind = "OrphanReference"


class CollisionExhausted(CorpusError):
    """No free destination name could be found for a move."""
    kind = "CollisionExhausted"


class WriteFailure(CorpusError):
    """I/O error while writing, copying or renaming."""
    kind = "WriteFailure"
