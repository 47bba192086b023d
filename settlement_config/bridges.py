"""
Config -> Kernel bridges.

The kernel never imports ``settlement_config``; these functions turn the
parsed configuration into kernel inputs.
"""

from __future__ import annotations

from settlement_config.schema import EngineConfig
from settlement_kernel.services.invoice_number_service import DocumentType, NumberFormat


def build_number_formats(config: EngineConfig) -> dict[DocumentType, NumberFormat]:
    """Number formats keyed by kernel document type.

    Raises:
        ValueError: the configuration names an unknown document type.
    """
    formats: dict[DocumentType, NumberFormat] = {}
    for name, fmt in config.number_formats.items():
        formats[DocumentType(name)] = NumberFormat(pattern=fmt.pattern, max_value=fmt.max_value)
    return formats
