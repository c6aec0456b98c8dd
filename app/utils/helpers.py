from typing import Any, Dict, Optional

from app.config.settings import settings


def clamp_per_page(per_page: Optional[int]) -> int:
    """Tamaño de página dentro de los límites configurados"""
    if not per_page or per_page < 1:
        return settings.default_page_size
    return min(per_page, settings.max_page_size)


def split_csv(valor: Optional[str]) -> Optional[list]:
    """'STUDENT, STAFF' -> ['STUDENT', 'STAFF']; vacío -> None"""
    if not valor:
        return None
    partes = [p.strip().upper() for p in valor.split(",") if p.strip()]
    return partes or None


class ResponseFormatter:
    """Formateador de respuestas estándar"""

    @staticmethod
    def success(data: Any = None, code: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
        response: Dict[str, Any] = {"ok": True}
        if code:
            response["code"] = code
        response["data"] = data
        response.update(extra)
        return response
