"""
SafePrag - Motor de Paginação do Relatório

Decide ANTES da renderização onde quebrar páginas, para que nenhum bloco
(tabela de um dispositivo, observações, assinaturas) seja cortado entre
duas páginas.

A posição de partida vem do frame real: as seções que fluem livremente
(cliente, serviços, dispositivos) são renderizadas num documento descartável
com a mesma geometria e a posição do frame é lida após o último flowable.
Assim entram na conta as linhas de cabeçalho repetidas (repeatRows), a sobra
deixada quando uma tabela é partida e o spaceBefore descartado no topo.

A partir daí cada bloco é medido como o reportlab empilha flowables dentro
de um KeepTogether; quando o bloco não cabe (respeitando a reserva do rodapé
e o espaço mínimo em branco), um PageBreak explícito é inserido antes dele.
A decisão é determinística: mesma entrada, mesmas quebras.
"""
import io
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.platypus import (
    BaseDocTemplate, Flowable, Frame, KeepTogether, PageBreak, PageTemplate, Spacer,
)
from reportlab.platypus.doctemplate import ActionFlowable

from safeprag.core.config import settings
from safeprag.core.logging_config import get_logger

log = get_logger(__name__)

# Altura "infinita" para medir sem restrição de espaço
MEASURE_HEIGHT = 1_000_000

# Tolerância para considerar a página vazia
EPSILON = 0.01

# Flowables menores que isso não ocupam espaço (mesmo critério do reportlab)
ZERO_SIZE = 1e-6


# =============================================================================
# GEOMETRIA
# =============================================================================

@dataclass(frozen=True)
class PageGeometry:
    """Geometria vertical da página, em pontos."""

    page_height: float = A4[1]
    top_margin: float = 28.35
    bottom_margin: float = 56.69
    footer_reserve: float = 6.0
    block_bottom_margin: float = 3.0
    min_bottom_whitespace: float = 6.0
    compact_min_whitespace: float = 4.5
    section_min_whitespace: float = 7.5

    @property
    def usable_height(self) -> float:
        return self.page_height - self.top_margin - self.bottom_margin

    @classmethod
    def from_settings(cls) -> "PageGeometry":
        return cls(
            page_height=settings.PDF_PAGE_HEIGHT,
            top_margin=settings.PDF_TOP_MARGIN,
            bottom_margin=settings.PDF_BOTTOM_MARGIN,
            footer_reserve=settings.PDF_FOOTER_RESERVE,
            block_bottom_margin=settings.PDF_BLOCK_BOTTOM_MARGIN,
            min_bottom_whitespace=settings.PDF_MIN_BOTTOM_WHITESPACE,
            compact_min_whitespace=settings.PDF_COMPACT_MIN_WHITESPACE,
            section_min_whitespace=settings.PDF_SECTION_MIN_WHITESPACE,
        )


@dataclass(frozen=True)
class FramePosition:
    """Onde o próximo flowable começa."""

    used_height: float = 0.0
    at_top: bool = True
    space_after: float = 0.0  # spaceAfter do último flowable (sobrepõe o próximo spaceBefore)
    page: int = 1


@dataclass(frozen=True)
class BlockPlacement:
    """Registro de uma decisão de paginação."""

    key: str
    start_height: float
    height: float
    page: int = 1
    break_inserted: bool = False
    fresh_page: bool = False
    with_header: bool = False
    compact: bool = False
    measurement_failed: bool = False

    @property
    def end_height(self) -> float:
        return self.start_height + self.height


class LayoutMeasurementError(Exception):
    pass


# Constrói o bloco: (incluir_cabeçalho, compacto) -> flowables
BlockBuilder = Callable[[bool, bool], List[Flowable]]

# Recria flowables novos a cada chamada (o reportlab altera os já renderizados)
FlowableSource = Callable[[], List[Flowable]]


def content_frame(doc: BaseDocTemplate) -> Frame:
    """Frame único, sem padding, ocupando a área útil do documento."""
    return Frame(
        doc.leftMargin, doc.bottomMargin, doc.width, doc.height,
        leftPadding=0, rightPadding=0, topPadding=0, bottomPadding=0,
        id='content',
    )


def stack_flowables(flowables: Sequence[Flowable], width: float) -> Tuple[float, float, float]:
    """
    Altura dos flowables empilhados como num KeepTogether.

    Entre vizinhos vale o maior espaço (spaceAfter de um, spaceBefore do
    outro). O spaceBefore do primeiro e o spaceAfter do último ficam fora
    da altura e são devolvidos à parte.

    Returns:
        (altura, spaceBefore do primeiro, spaceAfter do último)
    """
    height = 0.0
    first_before = 0.0
    previous_after = None
    for flowable in flowables:
        w, h = flowable.wrap(width, MEASURE_HEIGHT)
        if w <= ZERO_SIZE or h <= ZERO_SIZE:
            continue
        if previous_after is None:
            first_before = flowable.getSpaceBefore()
        else:
            height += max(previous_after, flowable.getSpaceBefore())
        height += h
        previous_after = flowable.getSpaceAfter()
    return height, first_before, previous_after or 0.0


# =============================================================================
# POSIÇÃO REAL DO FRAME
# =============================================================================

class DryRunDocTemplate(BaseDocTemplate):
    """Documento descartável que guarda a posição do frame após cada flowable."""

    def __init__(self, geometry: PageGeometry, width: float):
        super().__init__(
            io.BytesIO(),
            pagesize=(width, geometry.page_height),
            leftMargin=0,
            rightMargin=0,
            topMargin=geometry.top_margin,
            bottomMargin=geometry.bottom_margin,
        )
        self.addPageTemplates([PageTemplate(id='dry_run', frames=[content_frame(self)])])
        self.position = FramePosition()

    def afterFlowable(self, flowable):
        if isinstance(flowable, (ActionFlowable, PageBreak)):
            return
        frame = self.frame
        top = frame._y2 - frame._topPadding
        self.position = FramePosition(
            used_height=top - frame._y,
            at_top=bool(frame._atTop),
            space_after=frame._prevASpace,
            page=self.page,
        )


def locate_frame_position(flowables: List[Flowable], geometry: PageGeometry, width: float) -> FramePosition:
    """Renderiza os flowables e devolve a posição final do frame."""
    if not flowables:
        return FramePosition()
    doc = DryRunDocTemplate(geometry, width)
    doc.build(list(flowables))
    return doc.position


Locator = Callable[[List[Flowable], PageGeometry, float], FramePosition]


# =============================================================================
# MOTOR
# =============================================================================

class LayoutEngine:
    """
    Monta a sequência de flowables com quebras de página explícitas.

    Uso:
        engine = LayoutEngine(geometry, width)
        engine.add_flowing("cliente", lambda: [titulo, tabela])
        engine.place_device_block("dispositivo:1", build)
        doc.build(engine.story)
    """

    def __init__(
        self,
        geometry: PageGeometry,
        width: float,
        position: Optional[FramePosition] = None,
        locate: Locator = locate_frame_position,
    ):
        self.geometry = geometry
        self.width = width
        self.locate = locate
        self.story: List[Flowable] = []
        self.placements: List[BlockPlacement] = []
        self.header_page: Optional[int] = None
        self._sources: List[FlowableSource] = []
        self._position: Optional[FramePosition] = position or FramePosition()

    # -------------------------------------------------------------------------
    # Estado
    # -------------------------------------------------------------------------

    @property
    def usable_height(self) -> float:
        return self.geometry.usable_height

    @property
    def position(self) -> FramePosition:
        """Posição atual; renderiza o conteúdo já emitido quando desconhecida."""
        if self._position is None:
            flowables = [f for source in self._sources for f in source()]
            try:
                self._position = self.locate(flowables, self.geometry, self.width)
            except Exception as e:
                raise LayoutMeasurementError(str(e)) from e
        return self._position

    @property
    def used_height(self) -> float:
        return self.position.used_height

    @property
    def page_is_fresh(self) -> bool:
        return self.position.at_top or self.position.used_height < EPSILON

    @property
    def header_on_page(self) -> bool:
        return self.header_page is not None and self.header_page == self.position.page

    @property
    def page_breaks(self) -> int:
        return sum(1 for f in self.story if isinstance(f, PageBreak))

    def measure(self, flowables: Sequence[Flowable]) -> Tuple[float, float, float]:
        try:
            return stack_flowables(flowables, self.width)
        except Exception as e:
            raise LayoutMeasurementError(str(e)) from e

    def _emit(self, source: FlowableSource, flowables: Optional[List[Flowable]] = None) -> None:
        self.story.extend(source() if flowables is None else flowables)
        self._sources.append(source)

    def _start_of(self, position: FramePosition, space_before: float) -> float:
        """Altura onde o conteúdo do bloco começa (spaceBefore some no topo)."""
        if position.at_top:
            return position.used_height
        return position.used_height + max(space_before - position.space_after, 0.0)

    def _start_new_page(self, position: FramePosition) -> FramePosition:
        self._emit(lambda: [PageBreak()])
        self._position = FramePosition(page=position.page + 1)
        return self._position

    def _settle(self, start: float, height: float, space_after: float, page: int) -> bool:
        """Atualiza a posição após um bloco. Retorna True se o bloco transbordou."""
        if start + height > self.usable_height + ZERO_SIZE:
            self._position = None
            return True
        self._position = FramePosition(
            used_height=start + height + space_after,
            at_top=False,
            space_after=space_after,
            page=page,
        )
        return False

    # -------------------------------------------------------------------------
    # Conteúdo que flui normalmente
    # -------------------------------------------------------------------------

    def add_flowing(self, key: str, source: FlowableSource) -> None:
        """Seções que podem quebrar naturalmente; a posição passa a vir do frame."""
        self._emit(source)
        self._position = None
        log.debug("layout_flowing_added", block=key)

    # -------------------------------------------------------------------------
    # Blocos de dispositivo (tabela de contagem de pragas)
    # -------------------------------------------------------------------------

    def _fits(self, start: float, height: float, min_whitespace: float) -> bool:
        projected = start + height + self.geometry.footer_reserve
        leftover = self.usable_height - projected
        return projected <= self.usable_height and leftover >= min_whitespace

    def _device_block(self, build: BlockBuilder, with_header: bool, compact: bool) -> List[Flowable]:
        return build(with_header, compact) + [Spacer(1, self.geometry.block_bottom_margin)]

    def place_device_block(self, key: str, build: BlockBuilder) -> BlockPlacement:
        """
        Posiciona um bloco de dispositivo.

        1. Cabeçalho apenas se ainda não apareceu nesta página
        2. Mede a variante normal
        3. Se não couber, tenta a variante compacta
        4. Se ainda não couber, quebra a página e repete o cabeçalho
        5. Atualiza a posição com a altura real do bloco final
        """
        g = self.geometry
        try:
            position = self.position
            with_header = not self.header_on_page
            fresh = self.page_is_fresh
            compact = False
            break_needed = False

            content = self._device_block(build, with_header, False)
            height, before, after = self.measure(content)
            start = self._start_of(position, before)

            if not fresh and not self._fits(start, height, g.min_bottom_whitespace):
                compact_content = self._device_block(build, with_header, True)
                compact_height, compact_before, compact_after = self.measure(compact_content)
                compact_start = self._start_of(position, compact_before)
                if self._fits(compact_start, compact_height, g.compact_min_whitespace):
                    content, height, after, start = compact_content, compact_height, compact_after, compact_start
                    compact = True
                else:
                    break_needed = True
                    with_header = True
                    content = self._device_block(build, True, False)
                    height, _, after = self.measure(content)
                    start = 0.0
        except LayoutMeasurementError as e:
            return self._place_unmeasured(key, build, e)

        if break_needed:
            position = self._start_new_page(position)

        self._emit(
            lambda h=with_header, c=compact: [KeepTogether(self._device_block(build, h, c))],
            [KeepTogether(content)],
        )
        placement = BlockPlacement(
            key=key,
            start_height=start,
            height=height,
            page=position.page,
            break_inserted=break_needed,
            fresh_page=fresh or break_needed,
            with_header=with_header,
            compact=compact,
        )
        self.placements.append(placement)

        spills = self._settle(start, height, after, position.page)
        if with_header and not spills:
            self.header_page = position.page
        return placement

    def _place_unmeasured(self, key: str, build: BlockBuilder, error: Exception) -> BlockPlacement:
        """Sem medida: inclui o bloco sem quebra forçada (melhor esforço)."""
        log.warning("layout_measurement_failed", block=key, error=str(error))
        known = self._position
        with_header = known is None or self.header_page != known.page
        self._emit(lambda: [KeepTogether(build(with_header, False))])
        placement = BlockPlacement(
            key=key,
            start_height=known.used_height if known else 0.0,
            height=0.0,
            page=known.page if known else 0,
            with_header=with_header,
            measurement_failed=True,
        )
        self.placements.append(placement)
        if with_header and known is not None:
            self.header_page = known.page
        self._position = None
        return placement

    # -------------------------------------------------------------------------
    # Seções únicas (observações, assinaturas)
    # -------------------------------------------------------------------------

    def place_section_block(
        self,
        key: str,
        source: FlowableSource,
        min_whitespace: Optional[float] = None,
    ) -> BlockPlacement:
        """Seção inteira na página atual ou no topo da próxima."""
        g = self.geometry
        if min_whitespace is None:
            min_whitespace = g.section_min_whitespace

        try:
            flowables = source()
            position = self.position
            height, before, after = self.measure(flowables)
        except LayoutMeasurementError as e:
            log.warning("layout_measurement_failed", block=key, error=str(e))
            known = self._position
            self._emit(lambda: [KeepTogether(source())])
            placement = BlockPlacement(
                key=key,
                start_height=known.used_height if known else 0.0,
                height=0.0,
                page=known.page if known else 0,
                measurement_failed=True,
            )
            self.placements.append(placement)
            self._position = None
            return placement

        fresh = self.page_is_fresh
        start = self._start_of(position, before)
        break_needed = not fresh and not self._fits(start, height, min_whitespace)

        if break_needed:
            position = self._start_new_page(position)
            start = 0.0

        self._emit(lambda: [KeepTogether(source())], [KeepTogether(flowables)])
        placement = BlockPlacement(
            key=key,
            start_height=start,
            height=height,
            page=position.page,
            break_inserted=break_needed,
            fresh_page=fresh or break_needed,
        )
        self.placements.append(placement)
        self._settle(start, height, after, position.page)
        return placement
