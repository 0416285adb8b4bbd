"""Item processor and the collaborator interfaces it consumes."""

from docexport.processor.errors import ItemProcessingError
from docexport.processor.processor import ItemProcessor
from docexport.processor.protocols import ConversionEngine, SourceClient, UpsertOutcome


__all__ = [
    "ConversionEngine",
    "ItemProcessingError",
    "ItemProcessor",
    "SourceClient",
    "UpsertOutcome",
]
