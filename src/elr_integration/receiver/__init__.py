from .application import ProcessingResult, ReceiverApplication
from .context import PipelineContext
from .dispatcher import VersionDispatcher

__all__ = ["PipelineContext", "ProcessingResult", "ReceiverApplication", "VersionDispatcher"]
