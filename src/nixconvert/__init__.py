from .converter import Converter
from .errors import ConversionError, EvalError, ExtractError, ParseError, RenderError
from .model import ConversionRequest, ConversionResult, Job, JobManifest, Outcome, Resource, StageRole

__all__ = [
    "Converter",
    "ConversionError",
    "EvalError",
    "ExtractError",
    "ParseError",
    "RenderError",
    "ConversionRequest",
    "ConversionResult",
    "Job",
    "JobManifest",
    "Outcome",
    "Resource",
    "StageRole",
]
