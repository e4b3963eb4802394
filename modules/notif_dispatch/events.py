"""Outbox event kinds and the push copy each one produces.

Each supported ``type`` maps to one dataclass; ``parse_event`` turns a claimed
row into exactly one of them, and anything unrecognized becomes
``UnhandledEvent``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from modules.notif_dispatch.errors import MissingReferenceError
from modules.notif_dispatch.models import OutboxRow

NEW_SALE = "VENTA_VISIBLE_NUEVOS"
SALE_INVOICED = "VENTA_FACTURADA"
SALE_ADMIN_REQUEST = "VENTA_SOLICITUD_ADMIN"
PURCHASE_LINE_RECEIVED = "COMPRA_LINEA_INGRESADA"

PURCHASE_LINE_ROLES = ["VENTAS", "BODEGA", "ADMIN"]
SALES_SCREEN_ROUTE = "/(drawer)/(tabs)/ventas"


@dataclass(frozen=True)
class PushContent:
    title: str
    body: str
    data: Any = None


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _id_text(value: object) -> str:
    """Normalize a numeric or string identifier; '' when unusable."""
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(math.trunc(value)) if math.isfinite(value) else ""
    return _text(value)


def _number_text(value: object) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        return str(int(value)) if value.is_integer() else repr(value)
    return _text(value)


def sale_id(row: OutboxRow) -> str:
    """Sale id from ``ref_id``, falling back to ``payload.venta_id``."""
    venta_id = _id_text(row.ref_id) or _id_text(row.payload_dict.get("venta_id"))
    if not venta_id:
        raise MissingReferenceError()
    return venta_id


@dataclass(frozen=True)
class NewSaleEvent:
    """A sale became visible to the sales floor."""

    outbox_id: str
    payload: Any
    cliente_nombre: str = ""

    def render(self) -> PushContent:
        return PushContent("Nueva venta", self.cliente_nombre or "Venta nueva", self.payload)


@dataclass(frozen=True)
class SaleInvoicedEvent:
    outbox_id: str
    venta_id: str
    cliente_nombre: str = ""

    def render(self) -> PushContent:
        if self.cliente_nombre:
            body = f"La factura para {self.cliente_nombre} está lista."
        else:
            body = "La factura está lista."
        return PushContent(
            "Venta facturada", body, {"type": SALE_INVOICED, "venta_id": self.venta_id}
        )


_REQUEST_BODIES = {
    "EDICION": "Solicitud de edición",
    "ANULACION": "Solicitud de anulación",
    "REFACTURACION": "Solicitud de refacturación",
}


@dataclass(frozen=True)
class SaleAdminRequestEvent:
    """A seller asked an admin to edit, void or re-invoice a sale."""

    outbox_id: str
    venta_id: str
    accion: str = ""
    cliente_nombre: str = ""
    vendedor_codigo: str = ""
    nota: str = ""
    tag: str = ""
    estado: str = ""

    def render(self) -> PushContent:
        target = self.cliente_nombre or f"Venta #{self.venta_id}"
        prefix = _REQUEST_BODIES.get(self.accion, "Solicitud pendiente")

        data: dict[str, Any] = {
            "kind": SALE_ADMIN_REQUEST,
            "to": SALES_SCREEN_ROUTE,
            "venta_id": self.venta_id,
        }
        optional = {
            "accion": self.accion,
            "tag": self.tag,
            "nota": self.nota,
            "estado": self.estado,
            "cliente_nombre": self.cliente_nombre,
            "vendedor_codigo": self.vendedor_codigo,
        }
        data.update({k: v for k, v in optional.items() if v})
        return PushContent("Solicitud pendiente", f"{prefix}: {target}", data)


@dataclass(frozen=True)
class PurchaseLineEvent:
    """A purchase line was received into stock."""

    outbox_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    def render(self) -> PushContent:
        cantidad = _number_text(self.payload.get("cantidad"))
        nombre = _text(self.payload.get("producto_nombre")) or "Producto actualizado"
        marca = _text(self.payload.get("producto_marca"))

        body = f"{cantidad} {nombre}" if cantidad else nombre
        if marca:
            body += f" {marca}"
        return PushContent(
            "Nuevo ingreso:", body, {"type": PURCHASE_LINE_RECEIVED, **self.payload}
        )


@dataclass(frozen=True)
class UnhandledEvent:
    outbox_id: str
    type: str


OutboxEvent = (
    NewSaleEvent | SaleInvoicedEvent | SaleAdminRequestEvent | PurchaseLineEvent | UnhandledEvent
)


def parse_event(row: OutboxRow) -> OutboxEvent:
    """Build the typed event for a claimed row.

    Raises:
        MissingReferenceError: A sale event carries no usable sale id.
    """
    p = row.payload_dict

    if row.type == NEW_SALE:
        return NewSaleEvent(row.key, row.payload, cliente_nombre=_text(p.get("cliente_nombre")))

    if row.type == SALE_INVOICED:
        return SaleInvoicedEvent(
            row.key, sale_id(row), cliente_nombre=_text(p.get("cliente_nombre"))
        )

    if row.type == SALE_ADMIN_REQUEST:
        return SaleAdminRequestEvent(
            row.key,
            sale_id(row),
            accion=_text(p.get("accion")).upper(),
            cliente_nombre=_text(p.get("cliente_nombre")),
            vendedor_codigo=_text(p.get("vendedor_codigo")),
            nota=_text(p.get("nota")),
            tag=_text(p.get("tag")),
            estado=_text(p.get("estado")),
        )

    if row.type == PURCHASE_LINE_RECEIVED:
        return PurchaseLineEvent(row.key, dict(p))

    return UnhandledEvent(row.key, row.type)
