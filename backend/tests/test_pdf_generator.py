"""
SafePrag - Testes do Gerador de PDF da Ordem de Serviço
"""
import base64
import io
import re

import pytest
from PIL import Image as PILImage
from reportlab.platypus import BaseDocTemplate, Paragraph, Table

from safeprag.models.schemas import (
    ClientInfo,
    CompanyData,
    DeviceGroup,
    DevicePestCount,
    DeviceStatus,
    EnvironmentalLicense,
    PestEntry,
    Service,
    ServiceOrderReportData,
    Signatures,
)
from safeprag.services.reports import ServiceOrderReportGenerator, build_report_filename, pdf_generator
from safeprag.services.reports.pdf_generator import (
    PEST_COUNT_TITLE,
    PEST_COUNT_WIDTHS,
    decode_image_data,
    format_percentage,
    format_service_date,
    generate_content_hash,
    sanitize_filename_part,
    text_or,
)

PAGE_PATTERN = re.compile(rb"/Type /Page[^s]")


def count_pages(pdf_bytes: bytes) -> int:
    return len(PAGE_PATTERN.findall(pdf_bytes))


def is_pest_count_table(flowable) -> bool:
    if not isinstance(flowable, Table) or len(flowable._colWidths) != 4:
        return False
    total = sum(flowable._colWidths)
    ratios = [w / total for w in flowable._colWidths]
    return ratios == pytest.approx(PEST_COUNT_WIDTHS)


def has_pest_count_header(table: Table) -> bool:
    cell = table._cellvalues[0][0]
    return isinstance(cell, Paragraph) and cell.text == PEST_COUNT_TITLE


@pytest.fixture
def rendered_flowables(monkeypatch):
    """(página, flowable) de tudo o que o reportlab desenhou no PDF final."""
    rendered = []

    class RecordingDocTemplate(BaseDocTemplate):
        def afterFlowable(self, flowable):
            rendered.append((self.page, flowable))

    monkeypatch.setattr(pdf_generator, "BaseDocTemplate", RecordingDocTemplate)
    return rendered


def png_data_url() -> str:
    buffer = io.BytesIO()
    PILImage.new("RGB", (120, 40), (20, 90, 30)).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def report_data(pest_devices: int = 2, **overrides) -> ServiceOrderReportData:
    numbers = tuple(range(1, pest_devices + 1))
    values = dict(
        order_number=7,
        company_id="empresa-1",
        date="2026-10-15",
        start_time="08:00",
        end_time="09:00",
        client=ClientInfo(code="C001", name="Padaria São João", city="Campinas", state="SP"),
        services=(Service(type="Monitoramento", target_pest="Moscas"),),
        devices=(DeviceGroup(
            quantity=max(pest_devices, 1),
            status=(
                DeviceStatus(name="Praga encontrada", devices=numbers),
            ),
        ),),
        pest_counts=tuple(
            DevicePestCount(device_number=n, pests=(PestEntry(name="Mosca", count=n), PestEntry(name="Barata", count=1)))
            for n in numbers
        ),
        observations="Sem ocorrências graves.",
        technician_name="Carlos Souza",
    )
    values.update(overrides)
    return ServiceOrderReportData(**values)


class TestFilename:
    """Nome do arquivo: Cliente - OS - DD-MM-YYYY - Técnico.pdf"""

    def test_full_filename(self):
        name = build_report_filename("Padaria São João", 12, "2026-10-15", "Carlos Souza")
        assert name == "Padaria São João - 12 - 15-10-2026 - Carlos Souza.pdf"

    def test_brazilian_date_format(self):
        name = build_report_filename("Cliente X", 3, "05/01/2026", "Ana")
        assert name == "Cliente X - 3 - 05-01-2026 - Ana.pdf"

    def test_fallbacks(self):
        name = build_report_filename(None, 1, "2026-01-02", "  ")
        assert name == "Cliente - 1 - 02-01-2026 - Controlador.pdf"

    def test_missing_date_uses_today(self):
        name = build_report_filename("Loja", 1, None, "Ana")
        assert re.fullmatch(r"Loja - 1 - \d{2}-\d{2}-\d{4} - Ana\.pdf", name)

    def test_unsafe_characters_removed(self):
        assert sanitize_filename_part("A/B: Ltda.", "Cliente") == "AB Ltda"
        assert sanitize_filename_part("foo_bar", "Cliente") == "foobar"
        assert sanitize_filename_part("***", "Cliente") == "Cliente"


class TestFormatting:

    def test_text_or_placeholder(self):
        assert text_or(None) == "N/A"
        assert text_or("   ") == "N/A"
        assert text_or("A & B") == "A &amp; B"

    def test_format_service_date(self):
        assert format_service_date("2026-10-15") == "15/10/2026"
        assert format_service_date(None) == "N/A"

    def test_format_percentage(self):
        assert format_percentage(33.3) == "33,3%"
        assert format_percentage(None) == "-"

    def test_decode_image_data(self):
        assert decode_image_data(None) is None
        assert decode_image_data("data:image/png;base64,aGVsbG8=") == b"hello"


class TestServiceOrderReportGenerator:

    @pytest.mark.asyncio
    async def test_generates_pdf(self):
        pdf_bytes, placements, content_hash = await ServiceOrderReportGenerator().generate(report_data())
        assert pdf_bytes.startswith(b"%PDF")
        assert content_hash == generate_content_hash(pdf_bytes)
        assert count_pages(pdf_bytes) == 1
        keys = [p.key for p in placements]
        assert keys[-2:] == ["observations", "signatures"]
        assert "pest_count:Armadilha luminosa:1" in keys

    @pytest.mark.asyncio
    async def test_many_devices_paginate_without_split(self):
        """Muitos dispositivos: várias páginas, cada bloco inteiro em uma página."""
        data = report_data(pest_devices=60)
        pdf_bytes, placements, _ = await ServiceOrderReportGenerator().generate(data)

        breaks = sum(1 for p in placements if p.break_inserted)
        assert breaks >= 1
        assert count_pages(pdf_bytes) >= 2

        device_blocks = [p for p in placements if p.key.startswith("pest_count:")]
        assert len(device_blocks) == 60
        for placement in device_blocks:
            if placement.break_inserted:
                assert placement.with_header is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("services", [1, 40, 55])
    async def test_rendered_pages_match_layout(self, rendered_flowables, services):
        """
        No PDF final cada tabela de dispositivo cai na página prevista,
        inteira, e a primeira de cada página traz o cabeçalho.
        """
        data = report_data(
            pest_devices=60,
            services=tuple(
                Service(type=f"Serviço {i}", target_pest="Baratas", location=f"Setor {i}")
                for i in range(services)
            ),
        )
        _, placements, _ = await ServiceOrderReportGenerator().generate(data)

        tables = [(page, f) for page, f in rendered_flowables if is_pest_count_table(f)]
        device_blocks = [p for p in placements if p.key.startswith("pest_count:")]

        # Tabela partida geraria mais de um pedaço desenhado
        assert len(tables) == len(device_blocks) == 60
        assert [page for page, _ in tables] == [p.page for p in device_blocks]

        first_on_page = {}
        for page, table in tables:
            first_on_page.setdefault(page, table)
        for page, table in first_on_page.items():
            assert has_pest_count_header(table), f"página {page} sem cabeçalho"

        headers = [has_pest_count_header(t) for _, t in tables]
        assert headers.count(True) == len(first_on_page)

        # Nenhuma página fica só com a quebra forçada
        content_pages = {page for page, f in rendered_flowables if isinstance(f, (Table, Paragraph))}
        assert content_pages == set(range(1, max(content_pages) + 1))

    @pytest.mark.asyncio
    async def test_company_data_and_images(self):
        company = CompanyData(
            name="SafePrag Dedetizadora",
            cnpj="11.222.333/0001-44",
            logo_url=png_data_url(),
            environmental_license=EnvironmentalLicense(number="LA-123", date="2027-01-01"),
        )
        data = report_data(signatures=Signatures(controller=png_data_url(), client="não é imagem"))
        pdf_bytes, _, _ = await ServiceOrderReportGenerator().generate(data, company)
        assert pdf_bytes.startswith(b"%PDF")
        assert b"/Subtype /Image" in pdf_bytes

    @pytest.mark.asyncio
    async def test_placeholders_when_data_missing(self):
        """Sem empresa, cliente e assinaturas o PDF ainda é gerado."""
        data = ServiceOrderReportData(order_number=1, company_id="empresa-1")
        pdf_bytes, placements, _ = await ServiceOrderReportGenerator().generate(data)
        assert pdf_bytes.startswith(b"%PDF")
        assert count_pages(pdf_bytes) == 1
        assert not any(p.key.startswith("pest_count:") for p in placements)
