"""
SafePrag - Gerador de PDF da Ordem de Serviço

Seções, na ordem: cabeçalho da empresa, licenças, dados do cliente,
serviços, produtos, dispositivos monitorados, contagem de pragas por
dispositivo, observações e assinaturas. A paginação da contagem de pragas,
das observações e das assinaturas é decidida pelo LayoutEngine.
"""

import base64
import binascii
import hashlib
import io
import re
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

import httpx
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    BaseDocTemplate, Flowable, Image, PageTemplate,
    Paragraph, Spacer, Table, TableStyle,
)

from safeprag.core.config import settings
from safeprag.core.logging_config import get_logger
from safeprag.models.schemas import (
    CompanyData,
    DeviceGroup,
    DevicePestCount,
    ServiceOrderReportData,
)
from safeprag.services.device_reconciliation import format_device_sequence, status_percentage
from safeprag.services.reports.layout import BlockPlacement, LayoutEngine, PageGeometry, content_frame

log = get_logger(__name__)

# ============================================================
# PALETA
# ============================================================

COLORS = {
    'primary': colors.HexColor('#1B5E20'),        # Verde escuro (títulos)
    'primary_light': colors.HexColor('#E8F5E9'),  # Fundo de cabeçalho de tabela
    'accent': colors.HexColor('#2E7D32'),

    'gray_900': colors.HexColor('#111827'),
    'gray_700': colors.HexColor('#374151'),
    'gray_500': colors.HexColor('#6B7280'),
    'gray_400': colors.HexColor('#9CA3AF'),
    'gray_300': colors.HexColor('#D1D5DB'),
    'gray_100': colors.HexColor('#F3F4F6'),
    'gray_50': colors.HexColor('#F9FAFB'),

    'white': colors.white,
    'black': colors.black,
}

# Timezone Brasília
TZ_BRASILIA = timezone(timedelta(hours=-3))

PLACEHOLDER = 'N/A'
NOT_INFORMED = 'Não informado'

PEST_COUNT_TITLE = 'Contagem de Pragas por Dispositivo'
PEST_COUNT_COLUMNS = ['Tipo de Dispositivo', 'Número Dispositivo', 'Tipo de Praga', 'Quantidade']
PEST_COUNT_WIDTHS = [0.32, 0.18, 0.32, 0.18]


# ============================================================
# FUNÇÕES UTILITÁRIAS
# ============================================================

def get_brasilia_time() -> datetime:
    return datetime.now(TZ_BRASILIA)


def generate_content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def text_or(value: Optional[str], placeholder: str = PLACEHOLDER) -> str:
    """Texto escapado para Paragraph, com placeholder quando vazio."""
    if value is None or not str(value).strip():
        return placeholder
    return escape(str(value).strip())


def parse_service_date(value: Optional[str]) -> Optional[datetime]:
    """Aceita YYYY-MM-DD (ISO, com ou sem hora), DD/MM/YYYY e DD-MM-YYYY."""
    if not value:
        return None
    raw = value.strip()
    for fmt in ('%Y-%m-%d', '%d/%m/%Y', '%d-%m-%Y'):
        try:
            return datetime.strptime(raw[:10], fmt)
        except ValueError:
            continue
    return None


def format_service_date(value: Optional[str], sep: str = '/') -> str:
    """Data no formato DD/MM/YYYY (ou com o separador informado)."""
    parsed = parse_service_date(value)
    if parsed is None:
        return value or PLACEHOLDER
    return parsed.strftime(f'%d{sep}%m{sep}%Y')


def format_percentage(value: Optional[float]) -> str:
    if value is None:
        return '-'
    return f"{value:.1f}".replace('.', ',') + '%'


_FILENAME_UNSAFE = re.compile(r'[^\w\s-]', re.UNICODE)


def sanitize_filename_part(value: Optional[str], fallback: str) -> str:
    cleaned = _FILENAME_UNSAFE.sub('', value or '').replace('_', '')
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    return cleaned or fallback


def build_report_filename(
    client_name: Optional[str],
    order_number: int,
    service_date: Optional[str],
    technician_name: Optional[str],
) -> str:
    """
    Nome do arquivo: "{Cliente} - {OS} - {DD-MM-YYYY} - {Técnico}.pdf".

    Sem data válida, usa a data de hoje (Brasília).
    """
    parsed = parse_service_date(service_date) or get_brasilia_time()
    return " - ".join([
        sanitize_filename_part(client_name, 'Cliente'),
        str(order_number),
        parsed.strftime('%d-%m-%Y'),
        sanitize_filename_part(technician_name, 'Controlador'),
    ]) + ".pdf"


# ============================================================
# IMAGENS
# ============================================================

def decode_image_data(source: Optional[str]) -> Optional[bytes]:
    """Decodifica data URL ou base64 puro. Retorna None se inválido."""
    if not source or not source.strip():
        return None
    data = source.strip()
    if data.startswith('data:'):
        _, _, data = data.partition(',')
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        log.warning("report_image_decode_failed", error=str(e))
        return None


async def load_image_source(source: Optional[str], timeout: Optional[float] = None) -> Optional[bytes]:
    """Carrega imagem de URL http(s) ou de base64."""
    if not source:
        return None
    if source.startswith(('http://', 'https://')):
        try:
            async with httpx.AsyncClient(timeout=timeout or settings.PDF_IMAGE_TIMEOUT) as client:
                response = await client.get(source, follow_redirects=True)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            log.warning("report_image_fetch_failed", url=source, error=str(e))
            return None
    return decode_image_data(source)


def image_flowable(data: Optional[bytes], max_width: float, max_height: float, name: str) -> Flowable:
    """Imagem ajustada à caixa; caixa em branco se ausente ou inválida."""
    if not data:
        return Spacer(max_width, max_height)
    try:
        reader = ImageReader(io.BytesIO(data))
        img_w, img_h = reader.getSize()
        scale = min(max_width / img_w, max_height / img_h, 1.0)
        return Image(io.BytesIO(data), width=img_w * scale, height=img_h * scale)
    except Exception as e:
        log.warning("report_image_invalid", image=name, error=str(e))
        return Spacer(max_width, max_height)


# ============================================================
# ESTILOS
# ============================================================

def create_styles() -> Dict[str, ParagraphStyle]:
    return {
        'company_name': ParagraphStyle(
            'CompanyName',
            fontSize=13,
            fontName='Helvetica-Bold',
            textColor=COLORS['primary'],
            leading=16,
        ),
        'company_info': ParagraphStyle(
            'CompanyInfo',
            fontSize=8,
            fontName='Helvetica',
            textColor=COLORS['gray_700'],
            leading=10,
        ),
        'order_title': ParagraphStyle(
            'OrderTitle',
            fontSize=11,
            fontName='Helvetica-Bold',
            textColor=COLORS['gray_900'],
            alignment=TA_CENTER,
            leading=14,
        ),
        'order_info': ParagraphStyle(
            'OrderInfo',
            fontSize=8,
            fontName='Helvetica',
            textColor=COLORS['gray_700'],
            alignment=TA_CENTER,
            leading=10,
        ),
        'section_title': ParagraphStyle(
            'SectionTitle',
            fontSize=10,
            fontName='Helvetica-Bold',
            textColor=COLORS['primary'],
            spaceBefore=4*mm,
            spaceAfter=1.5*mm,
        ),
        'th': ParagraphStyle(
            'TH',
            fontSize=8,
            fontName='Helvetica-Bold',
            textColor=COLORS['gray_900'],
            leading=10,
        ),
        'td': ParagraphStyle(
            'TD',
            fontSize=8,
            fontName='Helvetica',
            textColor=COLORS['gray_700'],
            leading=10,
        ),
        'td_compact': ParagraphStyle(
            'TDCompact',
            fontSize=7,
            fontName='Helvetica',
            textColor=COLORS['gray_700'],
            leading=8.5,
        ),
        'th_compact': ParagraphStyle(
            'THCompact',
            fontSize=7,
            fontName='Helvetica-Bold',
            textColor=COLORS['gray_900'],
            leading=8.5,
        ),
        'label': ParagraphStyle(
            'Label',
            fontSize=7.5,
            fontName='Helvetica-Bold',
            textColor=COLORS['gray_500'],
            leading=9.5,
        ),
        'body': ParagraphStyle(
            'Body',
            fontSize=8.5,
            fontName='Helvetica',
            textColor=COLORS['gray_700'],
            leading=12,
        ),
        'signature_label': ParagraphStyle(
            'SignatureLabel',
            fontSize=8,
            fontName='Helvetica-Bold',
            textColor=COLORS['gray_900'],
            alignment=TA_CENTER,
            leading=10,
        ),
        'signature_info': ParagraphStyle(
            'SignatureInfo',
            fontSize=7.5,
            fontName='Helvetica',
            textColor=COLORS['gray_700'],
            alignment=TA_CENTER,
            leading=9.5,
        ),
    }


def grid_table_style(header_rows: int = 1, padding: float = 3, first_row: int = 0) -> List[tuple]:
    """Grade a partir de first_row; linhas acima (títulos) ficam sem borda."""
    style = [
        ('GRID', (0, first_row), (-1, -1), 0.5, COLORS['gray_300']),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ('TOPPADDING', (0, 0), (-1, -1), padding),
        ('BOTTOMPADDING', (0, 0), (-1, -1), padding),
        ('LEFTPADDING', (0, 0), (-1, -1), 4),
        ('RIGHTPADDING', (0, 0), (-1, -1), 4),
    ]
    if header_rows:
        style.append(('BACKGROUND', (0, first_row), (-1, first_row + header_rows - 1), COLORS['primary_light']))
    return style


# ============================================================
# SEÇÕES
# ============================================================

def create_header(
    company: CompanyData,
    data: ServiceOrderReportData,
    logo: Flowable,
    styles: Dict[str, ParagraphStyle],
    width: float,
) -> Table:
    """Logo, dados da empresa e quadro da OS."""
    company_lines = [Paragraph(text_or(company.name, ''), styles['company_name'])]
    info = [
        ('CNPJ', company.cnpj),
        ('Endereço', company.address),
        ('Telefone', company.phone),
        ('Email', company.email),
    ]
    for label, value in info:
        if value:
            company_lines.append(Paragraph(f"<b>{label}:</b> {escape(value)}", styles['company_info']))

    period = ''
    if data.start_time or data.end_time:
        period = f"{text_or(data.start_time, '--:--')} às {text_or(data.end_time, '--:--')}"

    order_box = [
        Paragraph('ORDEM DE SERVIÇO', styles['order_title']),
        Paragraph(f"Nº {data.order_number}", styles['order_title']),
        Paragraph(f"Data: {format_service_date(data.date)}", styles['order_info']),
    ]
    if period:
        order_box.append(Paragraph(f"Horário: {period}", styles['order_info']))

    logo_w = 35*mm
    box_w = 45*mm
    table = Table(
        [[logo, company_lines, order_box]],
        colWidths=[logo_w, width - logo_w - box_w, box_w],
    )
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('BOX', (2, 0), (2, 0), 0.8, COLORS['primary']),
        ('LINEBELOW', (0, 0), (-1, 0), 1, COLORS['primary']),
        ('LEFTPADDING', (0, 0), (-1, -1), 4),
        ('RIGHTPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    return table


def create_licenses(company: CompanyData, styles: Dict[str, ParagraphStyle]) -> Optional[Paragraph]:
    """Licença ambiental e alvará sanitário, quando informados."""
    parts = []
    env = company.environmental_license
    if env and env.number:
        text = f"<b>Licença Ambiental:</b> {escape(env.number)}"
        if env.date:
            text += f" - Validade: {format_service_date(env.date)}"
        parts.append(text)
    permit = company.sanitary_permit
    if permit and permit.number:
        text = f"<b>Alvará Sanitário:</b> {escape(permit.number)}"
        if permit.expiry_date:
            text += f" - Validade: {format_service_date(permit.expiry_date)}"
        parts.append(text)
    if not parts:
        return None
    return Paragraph(' &nbsp;&nbsp;|&nbsp;&nbsp; '.join(parts), styles['company_info'])


def create_client_section(data: ServiceOrderReportData, styles: Dict[str, ParagraphStyle], width: float) -> List[Flowable]:
    client = data.client
    city_state = '/'.join(v for v in (client.city, client.state) if v) or None

    def cell(label: str, value: Optional[str]) -> List[Paragraph]:
        return [Paragraph(label, styles['label']), Paragraph(text_or(value), styles['td'])]

    rows = [
        cell('Código', client.code) + cell('Razão Social', client.name),
        cell('Nome', client.trade_name) + cell('CNPJ/CPF', client.document),
        cell('Cidade/Estado', city_state) + cell('Endereço', client.address),
        cell('Telefone', client.phone) + cell('Contato', client.contact),
        cell('Email', client.email) + ['', ''],
    ]
    table = Table(rows, colWidths=[width*0.14, width*0.36, width*0.14, width*0.36])
    style = grid_table_style(header_rows=0)
    style += [
        ('BACKGROUND', (0, 0), (0, -1), COLORS['gray_50']),
        ('BACKGROUND', (2, 0), (2, -1), COLORS['gray_50']),
        ('SPAN', (1, 4), (3, 4)),
    ]
    table.setStyle(TableStyle(style))
    return [Paragraph('Dados Do Cliente', styles['section_title']), table]


def create_services_section(data: ServiceOrderReportData, styles: Dict[str, ParagraphStyle], width: float) -> List[Flowable]:
    rows = [[Paragraph(h, styles['th']) for h in ('Serviço', 'Praga Alvo', 'Local')]]
    for service in data.services:
        rows.append([
            Paragraph(text_or(service.type), styles['td']),
            Paragraph(text_or(service.target_pest), styles['td']),
            Paragraph(text_or(service.location), styles['td']),
        ])
    if len(rows) == 1:
        rows.append([Paragraph('Nenhum serviço informado', styles['td']), '', ''])

    table = Table(rows, colWidths=[width*0.40, width*0.30, width*0.30], repeatRows=1)
    style = grid_table_style()
    if not data.services:
        style.append(('SPAN', (0, 1), (-1, 1)))
    table.setStyle(TableStyle(style))
    return [Paragraph('Informações Dos Serviços', styles['section_title']), table]


def create_products_section(data: ServiceOrderReportData, styles: Dict[str, ParagraphStyle], width: float) -> List[Flowable]:
    """Tabela de produtos; vazia quando nenhum serviço usou produto."""
    products = data.products
    if not products:
        return []

    headers = ['Produto', 'Princípio Ativo', 'Grupo Químico', 'Registro', 'Lote', 'Validade', 'Quantidade', 'Diluente']
    rows = [[Paragraph(h, styles['th_compact']) for h in headers]]
    for p in products:
        rows.append([
            Paragraph(text_or(value), styles['td_compact'])
            for value in (
                p.name, p.active_ingredient, p.chemical_group, p.registration,
                p.batch, format_service_date(p.validity) if p.validity else None,
                p.quantity, p.dilution,
            )
        ])
    widths = [0.17, 0.15, 0.13, 0.12, 0.10, 0.11, 0.11, 0.11]
    table = Table(rows, colWidths=[width * w for w in widths], repeatRows=1)
    table.setStyle(TableStyle(grid_table_style()))
    return [Paragraph('Produtos Utilizados', styles['section_title']), table]


def create_devices_section(groups: Tuple[DeviceGroup, ...], styles: Dict[str, ParagraphStyle], width: float) -> List[Flowable]:
    """Resumo por tipo de dispositivo: quantidade, status (%) e numeração."""
    if not groups:
        return []

    rows = [[Paragraph(h, styles['th']) for h in ('Dispositivos', 'Quantidade', 'Status', 'Lista De Dispositivos')]]
    for group in groups:
        statuses = sorted(group.status, key=lambda s: s.name)
        status_lines = [
            f"{escape(s.name)} ({s.count} - {format_percentage(status_percentage(s.count, group.quantity))})"
            for s in statuses
        ]
        list_lines = [
            f"<b>{escape(s.name)}:</b> {format_device_sequence(s.devices)}"
            for s in statuses if s.devices
        ]
        rows.append([
            Paragraph(escape(group.type), styles['td']),
            Paragraph(str(group.quantity), styles['td']),
            Paragraph('<br/>'.join(status_lines) or '-', styles['td']),
            Paragraph('<br/>'.join(list_lines) or '-', styles['td']),
        ])

    table = Table(rows, colWidths=[width*0.22, width*0.12, width*0.30, width*0.36], repeatRows=1)
    table.setStyle(TableStyle(grid_table_style()))
    return [Paragraph('Dispositivos Monitorados', styles['section_title']), table]


def create_pest_count_block(
    entry: DevicePestCount,
    with_header: bool,
    compact: bool,
    styles: Dict[str, ParagraphStyle],
    width: float,
) -> List[Flowable]:
    """
    Tabela de um dispositivo na contagem de pragas.

    O título da seção e a linha de colunas só aparecem em with_header.
    A variante compacta reduz fonte e espaçamento.
    """
    td = styles['td_compact'] if compact else styles['td']
    th = styles['th_compact'] if compact else styles['th']
    padding = 1.5 if compact else 3

    rows = []
    if with_header:
        rows.append([Paragraph(PEST_COUNT_TITLE, styles['section_title']), '', '', ''])
        rows.append([Paragraph(h, th) for h in PEST_COUNT_COLUMNS])
        style = grid_table_style(header_rows=1, padding=padding, first_row=1)
        style.append(('SPAN', (0, 0), (-1, 0)))
    else:
        style = grid_table_style(header_rows=0, padding=padding)

    first = len(rows)
    for i, pest in enumerate(entry.pests):
        rows.append([
            Paragraph(escape(entry.device_type), td) if i == 0 else '',
            Paragraph(str(entry.device_number), td) if i == 0 else '',
            Paragraph(escape(pest.name), td),
            Paragraph(str(pest.count), td),
        ])
    last = len(rows) - 1
    if last > first:
        style += [('SPAN', (0, first), (0, last)), ('SPAN', (1, first), (1, last))]

    table = Table(rows, colWidths=[width * w for w in PEST_COUNT_WIDTHS])
    table.setStyle(TableStyle(style))
    return [table]


def create_observations_section(data: ServiceOrderReportData, styles: Dict[str, ParagraphStyle]) -> List[Flowable]:
    text = (data.observations or '').strip()
    body = escape(text).replace('\n', '<br/>') if text else 'Sem observações.'
    return [Paragraph('Observações', styles['section_title']), Paragraph(body, styles['body'])]


def create_signatures_section(
    data: ServiceOrderReportData,
    images: Dict[str, Optional[bytes]],
    styles: Dict[str, ParagraphStyle],
    width: float,
) -> List[Flowable]:
    """Três colunas: controlador, responsável técnico e cliente."""
    sig = data.signatures
    col_w = width / 3
    img_w, img_h = col_w - 10*mm, 18*mm

    columns = [
        ('controller', 'Controlador De Pragas', [
            text_or(sig.controller_name or data.technician_name, NOT_INFORMED),
            f"Tel: {text_or(sig.controller_phone)}",
        ]),
        ('technical', 'Responsável Técnico', [
            text_or(sig.technical_name, NOT_INFORMED),
            f"CREA: {text_or(sig.technical_crea)}",
        ]),
        ('client', 'Contato Do Cliente', [
            text_or(sig.client_contact or data.client.contact, NOT_INFORMED),
            f"Tel: {text_or(sig.client_phone or data.client.phone)}",
        ]),
    ]

    image_row, label_row, info_row = [], [], []
    for key, label, info in columns:
        image_row.append(image_flowable(images.get(key), img_w, img_h, f"signature_{key}"))
        label_row.append(Paragraph(label, styles['signature_label']))
        info_row.append([Paragraph(line, styles['signature_info']) for line in info])

    table = Table([image_row, label_row, info_row], colWidths=[col_w] * 3, rowHeights=[img_h + 2*mm, None, None])
    table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('VALIGN', (0, 0), (-1, 0), 'BOTTOM'),
        ('LINEABOVE', (0, 1), (0, 1), 0.8, COLORS['gray_700']),
        ('LINEABOVE', (1, 1), (1, 1), 0.8, COLORS['gray_700']),
        ('LINEABOVE', (2, 1), (2, 1), 0.8, COLORS['gray_700']),
        ('LEFTPADDING', (0, 0), (-1, -1), 5*mm),
        ('RIGHTPADDING', (0, 0), (-1, -1), 5*mm),
        ('TOPPADDING', (0, 0), (-1, -1), 1),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 1),
    ]))
    return [Spacer(1, 6*mm), table]


# ============================================================
# PAGINAÇÃO "i/N"
# ============================================================

class NumberedCanvas(canvas.Canvas):
    """Canvas em duas passadas: guarda as páginas e numera ao salvar."""

    right_margin = 10*mm
    bottom_offset = 8*mm

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states: List[dict] = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_page_number(total_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def _draw_page_number(self, total_pages: int):
        page_width, _ = self._pagesize
        self.setFont('Helvetica', 8)
        self.setFillColor(COLORS['gray_500'])
        self.drawRightString(page_width - self.right_margin, self.bottom_offset, f"{self._pageNumber}/{total_pages}")


# ============================================================
# MONTAGEM
# ============================================================

def build_report_story(
    data: ServiceOrderReportData,
    company: CompanyData,
    images: Dict[str, Optional[bytes]],
    geometry: PageGeometry,
    width: float,
) -> LayoutEngine:
    """Monta todas as seções e decide as quebras de página."""
    styles = create_styles()
    engine = LayoutEngine(geometry, width)

    def header():
        logo = image_flowable(images.get('logo'), 33*mm, 22*mm, 'logo')
        flowables = [create_header(company, data, logo, styles, width)]
        licenses = create_licenses(company, styles)
        if licenses is not None:
            flowables += [Spacer(1, 1.5*mm), licenses]
        return flowables

    engine.add_flowing('header', header)
    engine.add_flowing('client', lambda: create_client_section(data, styles, width))
    engine.add_flowing('services', lambda: create_services_section(data, styles, width))
    if data.products:
        engine.add_flowing('products', lambda: create_products_section(data, styles, width))
    if data.devices:
        engine.add_flowing('devices', lambda: create_devices_section(data.devices, styles, width))

    # Contagem de pragas: começa onde o frame real parou
    if data.pest_counts:
        engine.add_flowing('pest_counts_spacing', lambda: [Spacer(1, 4*mm)])
    for entry in data.pest_counts:
        engine.place_device_block(
            f"pest_count:{entry.device_type}:{entry.device_number}",
            lambda with_header, compact, entry=entry: create_pest_count_block(
                entry, with_header, compact, styles, width,
            ),
        )

    engine.place_section_block('observations', lambda: create_observations_section(data, styles))
    engine.place_section_block('signatures', lambda: create_signatures_section(data, images, styles, width))
    return engine


async def load_report_images(data: ServiceOrderReportData, company: CompanyData) -> Dict[str, Optional[bytes]]:
    sig = data.signatures
    return {
        'logo': await load_image_source(company.logo_url),
        'controller': decode_image_data(sig.controller),
        'technical': decode_image_data(sig.technical),
        'client': decode_image_data(sig.client),
    }


def render_report(
    data: ServiceOrderReportData,
    company: CompanyData,
    images: Dict[str, Optional[bytes]],
    geometry: Optional[PageGeometry] = None,
) -> Tuple[bytes, List[BlockPlacement]]:
    """Renderização síncrona (reportlab)."""
    geometry = geometry or PageGeometry.from_settings()
    page_width = A4[0]
    side = settings.PDF_SIDE_MARGIN

    buffer = io.BytesIO()
    doc = BaseDocTemplate(
        buffer,
        pagesize=(page_width, geometry.page_height),
        leftMargin=side,
        rightMargin=side,
        topMargin=geometry.top_margin,
        bottomMargin=geometry.bottom_margin,
        title=f"Ordem de Serviço {data.order_number}",
        author=company.name or settings.APP_NAME,
        creator=settings.APP_NAME,
    )
    doc.addPageTemplates([PageTemplate(id='service_order', frames=[content_frame(doc)])])

    engine = build_report_story(data, company, images, geometry, doc.width)
    doc.build(engine.story, canvasmaker=NumberedCanvas)

    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes, engine.placements


async def generate_service_order_report(
    data: ServiceOrderReportData,
    company: Optional[CompanyData] = None,
    geometry: Optional[PageGeometry] = None,
) -> Tuple[bytes, List[BlockPlacement], str]:
    """
    Gera o PDF de uma ordem de serviço.

    Returns:
        (pdf_bytes, decisões de paginação, sha256 do PDF)
    """
    company = company or CompanyData()
    images = await load_report_images(data, company)
    pdf_bytes, placements = render_report(data, company, images, geometry)
    content_hash = generate_content_hash(pdf_bytes)

    log.info(
        "service_order_pdf_generated",
        company_id=data.company_id,
        order_number=data.order_number,
        size_bytes=len(pdf_bytes),
        page_breaks=sum(1 for p in placements if p.break_inserted),
        pest_count_devices=len(data.pest_counts),
    )
    return pdf_bytes, placements, content_hash


class ServiceOrderReportGenerator:
    def __init__(self, geometry: Optional[PageGeometry] = None):
        self.geometry = geometry

    async def generate(
        self,
        data: ServiceOrderReportData,
        company: Optional[CompanyData] = None,
    ) -> Tuple[bytes, List[BlockPlacement], str]:
        return await generate_service_order_report(data, company, self.geometry)
