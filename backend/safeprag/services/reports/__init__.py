"""
SafePrag - Módulo de Relatórios
"""
from safeprag.services.reports.layout import BlockPlacement, LayoutEngine, PageGeometry
from safeprag.services.reports.pdf_generator import (
    ServiceOrderReportGenerator,
    build_report_filename,
    generate_service_order_report,
)

__all__ = [
    "BlockPlacement",
    "LayoutEngine",
    "PageGeometry",
    "ServiceOrderReportGenerator",
    "build_report_filename",
    "generate_service_order_report",
]
