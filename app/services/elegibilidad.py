"""
Motor de elegibilidad VM.

Decide si un expediente puede inscribirse en un proyecto o evento. Cada regla
es una función pura `check_*` que devuelve None (pasa) o una `Decision`
negativa; el `EvaluadorElegibilidad` carga los datos de cada paso solo cuando
llega a él, de modo que la primera regla que falla corta la evaluación.

El evaluador nunca escribe en la base. El listado de candidatos y las
inscripciones masivas usan exactamente el mismo evaluador que la inscripción
individual.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.core.errors import ReasonCode, VmError
from app.core.refs import Ref, RefKind
from app.crud.evento import evento as crud_evento
from app.crud.expediente import expediente as crud_expediente
from app.crud.matricula import matricula as crud_matricula
from app.crud.participacion import participacion as crud_participacion
from app.crud.periodo import periodo as crud_periodo
from app.crud.proyecto import proyecto as crud_proyecto, normalizar_niveles
from app.crud.registro_hora import registro_hora as crud_registro_hora
from app.models.enums import (
    ActividadEstado,
    ESTADOS_CERRADOS,
    ESTADOS_INSCRIBIBLES,
    ExpedienteEstado,
    ParticipacionEstado,
    ProyectoTipo,
    PROYECTO_TIPO_LEGACY,
)
from app.models.evento import Evento
from app.models.expediente import Expediente
from app.models.periodo import PeriodoAcademico
from app.models.proyecto import Proyecto

logger = logging.getLogger(__name__)

ELIGIBLE_FREE = "ELIGIBLE_FREE"
ELIGIBLE_LINKED = "ELIGIBLE_LINKED"
ELIGIBLE_EVENT = "ELIGIBLE_EVENT"

# Estados de proyecto que cuentan como antecesor vinculado
ESTADOS_PROYECTO_ANTECESOR = tuple(e.value for e in ActividadEstado)

Objetivo = Union[Proyecto, Evento]


@dataclass
class Decision:
    eligible: bool
    code: Optional[ReasonCode] = None
    message: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)
    motivo: Optional[str] = None

    @classmethod
    def ok(cls, motivo: str, meta: Optional[Dict[str, Any]] = None) -> "Decision":
        return cls(True, motivo=motivo, meta=meta or {})

    @classmethod
    def fail(
        cls, code: ReasonCode, message: str, meta: Optional[Dict[str, Any]] = None
    ) -> "Decision":
        return cls(False, code=code, message=message, meta=meta or {})

    def to_error(self) -> VmError:
        return VmError(self.code, self.message, meta=self.meta)


# ───────────────────────── Funciones puras ─────────────────────────

def parse_ciclo(valor) -> Optional[int]:
    """
    Ciclo como entero.

    Acepta enteros, cadenas numéricas ("5", "05", "5.0") o texto con dígitos
    ("V-05" -> 5). Sin dígitos devuelve None.
    """
    if valor is None or isinstance(valor, bool):
        return None
    if isinstance(valor, (int, float)):
        return int(valor)
    texto = str(valor).strip()
    try:
        return int(float(texto))
    except (ValueError, OverflowError):
        pass
    digitos = re.sub(r"\D+", "", texto)
    return int(digitos) if digitos else None


def ciclo_evaluado(ciclo_expediente, ciclo_matricula) -> Optional[int]:
    """El ciclo de la matrícula tiene prioridad sobre el del expediente"""
    ciclo_mat = parse_ciclo(ciclo_matricula)
    return ciclo_mat if ciclo_mat is not None else parse_ciclo(ciclo_expediente)


def normalizar_tipo(tipo: Optional[str]) -> str:
    tipo = (tipo or "").strip().upper()
    return ProyectoTipo.LINKED.value if tipo == PROYECTO_TIPO_LEGACY else tipo


def minutos_requeridos(horas_minimas: Optional[int], horas_planificadas: Optional[int]) -> int:
    horas = horas_minimas or horas_planificadas or 0
    return int(horas) * 60


def minutos_requeridos_proyecto(proyecto: Proyecto) -> int:
    return minutos_requeridos(proyecto.horas_minimas_participante, proyecto.horas_planificadas)


def porcentaje_avance(acumulado: int, requerido: int) -> Optional[int]:
    if requerido <= 0:
        return None
    return int(round(acumulado / requerido * 100))


def esta_finalizado(estado: Optional[str], acumulado: int, requerido: int) -> bool:
    """Bandera de presentación: estado FINISHED o minutos cumplidos"""
    if (estado or "").upper() == ParticipacionEstado.FINISHED.value:
        return True
    return acumulado >= requerido


def check_estado_proyecto(proyecto: Proyecto) -> Optional[Decision]:
    if proyecto.estado not in ESTADOS_INSCRIBIBLES:
        return Decision.fail(
            ReasonCode.PROJECT_NOT_ACTIVE,
            "El proyecto no está activo para inscripciones.",
            {"estado": proyecto.estado},
        )
    return None


def check_estado_evento(evento: Evento) -> Optional[Decision]:
    if evento.estado not in ESTADOS_INSCRIBIBLES:
        return Decision.fail(
            ReasonCode.EVENT_NOT_ACTIVE,
            "El evento no admite inscripciones en su estado actual.",
            {"estado": evento.estado},
        )
    return None


def check_expediente(
    expediente: Optional[Expediente], ep_sede_id: int, meta_key: str
) -> Optional[Decision]:
    """Expediente existente, de la misma EP-SEDE y ACTIVE"""
    meta = {meta_key: ep_sede_id}
    if expediente is None:
        return Decision.fail(
            ReasonCode.DIFFERENT_UNIT,
            "No tienes expediente en la EP_SEDE del destino.",
            dict(meta, motivo="NOT_FOUND"),
        )
    if expediente.ep_sede_id != ep_sede_id:
        return Decision.fail(
            ReasonCode.DIFFERENT_UNIT,
            "El expediente pertenece a otra EP_SEDE.",
            dict(meta, motivo="DIFFERENT_UNIT", expediente_ep_sede_id=expediente.ep_sede_id),
        )
    if expediente.estado != ExpedienteEstado.ACTIVE.value:
        return Decision.fail(
            ReasonCode.DIFFERENT_UNIT,
            "El expediente no está activo en esta EP_SEDE.",
            dict(meta, motivo="NOT_ACTIVE", expediente_estado=expediente.estado),
        )
    return None


def check_requiere_inscripcion(evento: Evento) -> Optional[Decision]:
    if not evento.requiere_inscripcion:
        return Decision.fail(
            ReasonCode.REGISTRATION_NOT_REQUIRED,
            "Este evento no requiere inscripción.",
        )
    return None


def check_ventana(
    desde: Optional[datetime], hasta: Optional[datetime], ahora: datetime
) -> Optional[Decision]:
    if desde is not None and ahora < desde:
        return Decision.fail(
            ReasonCode.REGISTRATION_NOT_OPEN,
            "La inscripción aún no está abierta.",
            {"inscripcion_desde": desde.isoformat()},
        )
    if hasta is not None and ahora > hasta:
        return Decision.fail(
            ReasonCode.REGISTRATION_CLOSED,
            "La inscripción ya cerró.",
            {"inscripcion_hasta": hasta.isoformat()},
        )
    return None


def check_ya_inscrito(participacion_id: Optional[int]) -> Optional[Decision]:
    if participacion_id is not None:
        return Decision.fail(
            ReasonCode.ALREADY_ENROLLED,
            "Ya estás inscrito.",
            {"participacion_id": participacion_id},
        )
    return None


def check_cupo(cupo_maximo: Optional[int], inscritos: int) -> Optional[Decision]:
    if cupo_maximo is not None and inscritos >= cupo_maximo:
        return Decision.fail(
            ReasonCode.EVENT_FULL,
            "Cupo completo.",
            {"cupo_maximo": cupo_maximo, "inscritos": inscritos},
        )
    return None


def check_nivel(
    niveles: Sequence[int], ciclo_expediente, ciclo_matricula
) -> Optional[Decision]:
    ciclo_exp = parse_ciclo(ciclo_expediente)
    ciclo_mat = parse_ciclo(ciclo_matricula)
    ciclo_usado = ciclo_evaluado(ciclo_expediente, ciclo_matricula)
    if not niveles or ciclo_usado is None or ciclo_usado not in niveles:
        return Decision.fail(
            ReasonCode.LEVEL_MISMATCH,
            "Tu ciclo no coincide con los niveles del proyecto.",
            {
                "proyecto_niveles": list(niveles),
                "ciclo_expediente": ciclo_exp,
                "ciclo_matricula": ciclo_mat,
                "ciclo_usado": ciclo_usado,
            },
        )
    return None


def check_antecesor_pendiente(
    proyecto: Proyecto,
    niveles: Sequence[int],
    requerido: int,
    acumulado: int,
) -> Decision:
    """Decisión PENDING_LINKED_PREV para un antecesor ya identificado"""
    faltan = max(0, requerido - acumulado)
    periodo = proyecto.periodo.codigo if proyecto.periodo is not None else proyecto.periodo_id
    return Decision.fail(
        ReasonCode.PENDING_LINKED_PREV,
        "Tienes un proyecto VINCULADO pendiente; faltan "
        f"{math.ceil(faltan / 60)} h para completarlo.",
        {
            "proyecto_id": proyecto.id,
            "niveles": list(niveles),
            "periodo": periodo,
            "requerido_min": requerido,
            "acumulado_min": acumulado,
            "faltan_min": faltan,
            "cerrado": proyecto.estado in ESTADOS_CERRADOS,
        },
    )


def es_pendiente(estado_participacion: Optional[str], requerido: int, acumulado: int) -> bool:
    if (estado_participacion or "").upper() == ParticipacionEstado.FINISHED.value:
        return False
    return acumulado < requerido


# ───────────────────────── Evaluador ─────────────────────────

_SIN_CARGAR = object()


class EvaluadorElegibilidad:
    """
    Evalúa expedientes contra un proyecto o evento.

    Una instancia vive lo que dura una operación: guarda en caché el período
    actual, los niveles de proyectos y las inscripciones precargadas por lote.
    """

    def __init__(self, db: AsyncSession, now: Optional[datetime] = None):
        self.db = db
        self.now = now or datetime.now()
        self._periodo_actual: Any = _SIN_CARGAR
        self._niveles: Dict[int, List[int]] = {}
        self._unidad_evento: Dict[int, Optional[int]] = {}
        self._inscritos: Dict[Tuple[str, int], Dict[int, int]] = {}
        self._conocidos: Dict[Tuple[str, int], set] = {}
        self._cupo_usado: Dict[int, int] = {}

    # --- datos perezosos ---

    async def periodo_actual(self) -> Optional[PeriodoAcademico]:
        if self._periodo_actual is _SIN_CARGAR:
            self._periodo_actual = await crud_periodo.get_actual(self.db)
        return self._periodo_actual

    async def niveles(self, proyecto: Proyecto) -> List[int]:
        if proyecto.id not in self._niveles:
            self._niveles[proyecto.id] = await crud_proyecto.niveles(self.db, proyecto)
        return self._niveles[proyecto.id]

    async def unidad(self, objetivo: Objetivo) -> Optional[int]:
        if isinstance(objetivo, Proyecto):
            return objetivo.ep_sede_id
        if objetivo.id not in self._unidad_evento:
            self._unidad_evento[objetivo.id] = await crud_evento.resolver_ep_sede(
                self.db, objetivo
            )
        return self._unidad_evento[objetivo.id]

    async def precargar_inscritos(self, ref: Ref, expediente_ids: Sequence[int]) -> None:
        """Una consulta por lote en lugar de una por expediente"""
        mapa = await crud_participacion.expedientes_inscritos(self.db, ref, expediente_ids)
        self._inscritos.setdefault(ref.key(), {}).update(mapa)
        self._conocidos.setdefault(ref.key(), set()).update(int(i) for i in expediente_ids)

    async def participacion_id(self, ref: Ref, expediente_id: int) -> Optional[int]:
        if expediente_id in self._conocidos.get(ref.key(), ()):
            return self._inscritos.get(ref.key(), {}).get(expediente_id)
        existente = await crud_participacion.get_for(self.db, ref, expediente_id)
        return existente.id if existente else None

    async def inscritos_evento(self, evento: Evento) -> int:
        if evento.id not in self._cupo_usado:
            self._cupo_usado[evento.id] = await crud_participacion.count_for(
                self.db, Ref(RefKind.EVENT, evento.id)
            )
        return self._cupo_usado[evento.id]

    def registrar_inscripcion(self, ref: Ref, expediente_id: int, participacion_id: int) -> None:
        """Mantiene las cachés coherentes tras crear una participación en el lote"""
        self._inscritos.setdefault(ref.key(), {})[expediente_id] = participacion_id
        self._conocidos.setdefault(ref.key(), set()).add(expediente_id)
        if ref.kind == RefKind.EVENT and ref.id in self._cupo_usado:
            self._cupo_usado[ref.id] += 1

    # --- decisiones ---

    async def evaluar(self, objetivo: Objetivo, expediente: Optional[Expediente]) -> Decision:
        if isinstance(objetivo, Proyecto):
            return await self.evaluar_proyecto(objetivo, expediente)
        return await self.evaluar_evento(objetivo, expediente)

    async def evaluar_proyecto(
        self, proyecto: Proyecto, expediente: Optional[Expediente]
    ) -> Decision:
        ref = Ref(RefKind.PROJECT, proyecto.id)

        fallo = check_estado_proyecto(proyecto) or check_expediente(
            expediente, proyecto.ep_sede_id, "proyecto_ep_sede_id"
        )
        if fallo:
            return fallo

        fallo = check_ya_inscrito(await self.participacion_id(ref, expediente.id))
        if fallo:
            return fallo

        tipo = normalizar_tipo(proyecto.tipo)
        if tipo == ProyectoTipo.FREE.value:
            return Decision.ok(ELIGIBLE_FREE)

        return await self._evaluar_vinculado(proyecto, expediente)

    async def _evaluar_vinculado(self, proyecto: Proyecto, expediente: Expediente) -> Decision:
        periodo = await self.periodo_actual()
        if periodo is None:
            return Decision.fail(
                ReasonCode.NO_CURRENT_PERIOD,
                "No hay un período académico marcado como actual.",
            )

        matricula = await crud_matricula.get_for(
            self.db, expediente_id=expediente.id, periodo_id=periodo.id
        )
        if matricula is None:
            return Decision.fail(
                ReasonCode.NOT_ENROLLED_CURRENT_PERIOD,
                "No estás matriculado en el período actual.",
                {"periodo_id": periodo.id, "periodo_codigo": periodo.codigo},
            )

        niveles = await self.niveles(proyecto)
        fallo = check_nivel(niveles, expediente.ciclo, matricula.ciclo)
        if fallo:
            return fallo

        fallo = await self.antecesor_pendiente(expediente.id, proyecto.ep_sede_id)
        if fallo:
            return fallo

        return Decision.ok(
            ELIGIBLE_LINKED,
            {"niveles": niveles, "ciclo_usado": ciclo_evaluado(expediente.ciclo, matricula.ciclo)},
        )

    async def antecesor_pendiente(self, expediente_id: int, ep_sede_id: int) -> Optional[Decision]:
        """Primer proyecto vinculado de la EP-SEDE aún sin completar por el alumno"""
        filas = await crud_participacion.vinculadas_de_expediente(
            self.db,
            expediente_id=expediente_id,
            ep_sede_id=ep_sede_id,
            estados_proyecto=ESTADOS_PROYECTO_ANTECESOR,
        )
        for part, proyecto in filas:
            if part.estado == ParticipacionEstado.FINISHED.value:
                continue
            requerido = minutos_requeridos_proyecto(proyecto)
            acumulado = await crud_registro_hora.minutos_de(
                self.db, proyecto_id=proyecto.id, expediente_id=expediente_id
            )
            if es_pendiente(part.estado, requerido, acumulado):
                niveles = normalizar_niveles([c.nivel for c in proyecto.ciclos], proyecto.nivel)
                return check_antecesor_pendiente(proyecto, niveles, requerido, acumulado)
        return None

    async def evaluar_evento(self, evento: Evento, expediente: Optional[Expediente]) -> Decision:
        ref = Ref(RefKind.EVENT, evento.id)

        fallo = check_estado_evento(evento)
        if fallo:
            return fallo

        ep_sede_id = await self.unidad(evento)
        if not ep_sede_id:
            return Decision.fail(
                ReasonCode.EVENT_WITHOUT_UNIT,
                "El evento no tiene una EP_SEDE resoluble.",
                {"target_type": evento.target_type, "target_id": evento.target_id},
            )

        fallo = (
            check_expediente(expediente, ep_sede_id, "evento_ep_sede_id")
            or check_requiere_inscripcion(evento)
            or check_ventana(evento.inscripcion_desde, evento.inscripcion_hasta, self.now)
        )
        if fallo:
            return fallo

        fallo = check_ya_inscrito(await self.participacion_id(ref, expediente.id))
        if fallo:
            return fallo

        if evento.cupo_maximo is not None:
            fallo = check_cupo(evento.cupo_maximo, await self.inscritos_evento(evento))
            if fallo:
                return fallo

        return Decision.ok(ELIGIBLE_EVENT)


def ref_de(objetivo: Objetivo) -> Ref:
    kind = RefKind.PROJECT if isinstance(objetivo, Proyecto) else RefKind.EVENT
    return Ref(kind, objetivo.id)


async def recorrer_candidatos(
    evaluador: EvaluadorElegibilidad,
    objetivo: Objetivo,
    ep_sede_id: int,
    *,
    q: Optional[str] = None,
    batch_size: Optional[int] = None,
) -> AsyncIterator[Tuple[Expediente, Decision]]:
    """
    Evalúa cada expediente ACTIVE de la EP-SEDE contra el objetivo.

    Recorre la población en lotes por id y usa el mismo `evaluar` que la
    inscripción individual; el llamador decide cuándo dejar de consumir.
    """
    ref = ref_de(objetivo)
    async for lote in crud_expediente.iter_activos(
        evaluador.db,
        ep_sede_id=ep_sede_id,
        q=q,
        batch_size=batch_size or settings.candidates_batch_size,
    ):
        logger.debug("Lote de %s candidatos para %s/%s", len(lote), ref.kind.value, ref.id)
        await evaluador.precargar_inscritos(ref, [e.id for e in lote])
        for exp in lote:
            yield exp, await evaluador.evaluar(objetivo, exp)
