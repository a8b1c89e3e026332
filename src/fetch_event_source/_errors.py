from __future__ import annotations
from dataclasses import dataclass
from typing import Any


class EventSourceError(RuntimeError):
    """Error base de la librería."""


@dataclass(slots=True)
class EventSourceResponseError(EventSourceError):
    """
    Respuesta rechazada por la validación por defecto de `onopen`.

    Se produce cuando el status no está en el rango 2xx o cuando el Content-Type
    no empieza por text/event-stream. Se entrega a `onerror` como cualquier otro
    error de conexión, por lo que es reintentable salvo que el hook lo relance.
    """
    status_code: int
    message: str
    status_text: str = ""
    content_type: str | None = None
    body: str | None = None

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"EventSourceResponseError("
            f"status_code={self.status_code}, "
            f"message={self.message!r}, "
            f"status_text={self.status_text!r}, "
            f"content_type={self.content_type!r}, "
            f"body={'...' if self.body else None})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convierte el error a dict para logging estructurado."""
        return {
            "status_code": self.status_code,
            "message": self.message,
            "status_text": self.status_text,
            "content_type": self.content_type,
            "body": self.body,
        }

    @property
    def is_client_error(self) -> bool:
        """True si es un error 4xx (problema del cliente)."""
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        """True si es un error 5xx (problema del servidor)."""
        return 500 <= self.status_code < 600

    @property
    def is_content_type_error(self) -> bool:
        """True si el status era correcto pero el cuerpo no es un event-stream."""
        return 200 <= self.status_code < 300
