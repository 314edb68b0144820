"""GovWatch MY procurement extraction package."""

from importlib import import_module
from typing import Any

__all__ = [
    "GovWatchConfig",
    "ProcurementDatabase",
    "ProcurementRecord",
    "RawExtractedRecord",
    "RecordNormalizer",
    "ResponseInterceptor",
    "ScrapePipeline",
    "TriggerResult",
    "extract_dom_records",
]

_EXPORTS = {
    "GovWatchConfig": "govwatch.config",
    "ProcurementDatabase": "govwatch.database",
    "ProcurementRecord": "govwatch.models",
    "RawExtractedRecord": "govwatch.models",
    "TriggerResult": "govwatch.models",
    "RecordNormalizer": "govwatch.normalizer",
    "ResponseInterceptor": "govwatch.interceptor",
    "ScrapePipeline": "govwatch.pipeline",
    "extract_dom_records": "govwatch.dom_extractor",
}


def __getattr__(name: str) -> Any:
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(__all__)
