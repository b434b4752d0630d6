"""
Settlement message rendering.

Builds the plain-text message sent to a seller about a settlement.
Every number is a stored field, formatted without recomputation; dates come
from the settlement itself, never from the wall clock, so rendering the
same settlement twice gives the same text.
"""

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal

from app.models.enums import ProfitModel
from app.services.settlement.query_manager import SettlementRecord
from app.utils.formatters import format_money, format_percentage


STATE_LABELS = {
    "pending": "🟡 Pendiente",
    "confirmed": "✅ Confirmado",
    "void": "❌ Anulado",
}

MODEL_LABELS = {
    ProfitModel.FLAT_SPLIT.value: "Reparto fijo",
    ProfitModel.CASCADE_SPLIT.value: "Reparto en cascada",
}


def format_date(dt: datetime | None) -> str:
    """
    Format datetime to readable string.

    Args:
        dt: Datetime object

    Returns:
        Formatted date string or "—" if None
    """
    if not dt:
        return "—"
    return dt.strftime("%d/%m/%Y %H:%M")


def render_settlement_message(
    record: SettlementRecord,
    *,
    seller_name: str,
    tranche_number: int,
    beneficiary_names: Mapping[int, str] | None = None,
    brand_name: str = "",
    currency_symbol: str = "$",
    quantum: Decimal = Decimal("0.01"),
) -> str:
    """
    Render the settlement message for a seller.

    Args:
        record: Settlement record
        seller_name: Seller display name
        tranche_number: Tranche number inside its batch
        beneficiary_names: Upline names by seller id
        brand_name: Brand shown in the header
        currency_symbol: Currency symbol prefix
        quantum: Smallest currency unit

    Returns:
        Message text
    """
    names = beneficiary_names or {}

    def money(amount: Decimal | None) -> str:
        return format_money(amount, quantum, currency_symbol)

    lines = []
    header = f"*{brand_name}* · Cuadre #{record.id}" if brand_name else f"Cuadre #{record.id}"
    lines.append(header)
    lines.append(f"Vendedor: {seller_name} (N{record.seller_tier})")
    lines.append(f"Tanda: {tranche_number}")
    lines.append(f"Estado: {STATE_LABELS.get(record.state, record.state)}")
    lines.append(f"Fecha: {format_date(record.created_at)}")
    lines.append("")

    lines.append(f"Recaudado: {money(record.collected)}")
    if record.prior_surplus:
        lines.append(f"Excedente anterior: {money(record.prior_surplus)}")
    lines.append(f"Disponible: {money(record.available)}")
    lines.append(f"Recuperación de inversión: {money(record.investment_recoup)}")
    lines.append(f"Ganancia bruta: {money(record.gross_profit)}")
    if record.carried_debt:
        lines.append(f"Deuda arrastrada: {money(record.carried_debt)}")
    lines.append("")

    model_label = MODEL_LABELS.get(record.profit_model, record.profit_model)
    lines.append(
        f"{model_label}: vendedor {format_percentage(record.seller_pct)}"
    )
    for share in record.cascade:
        name = names.get(share.beneficiary_id, f"#{share.beneficiary_id}")
        lines.append(f"  {share.level} {name}: {money(share.amount)}")
    lines.append("")

    lines.append(f"Para el vendedor: {money(record.seller_amount)}")
    lines.append(f"*Debe transferir: {money(record.expected_transfer)}*")

    if record.actual_transfer is not None:
        lines.append("")
        lines.append(f"Transferido: {money(record.actual_transfer)}")
        lines.append(f"Excedente resultante: {money(record.resulting_surplus)}")
        lines.append(f"Confirmado: {format_date(record.confirmed_at)}")
        if record.note:
            lines.append(f"Nota: {record.note}")

    if record.voided_at is not None:
        lines.append("")
        lines.append(f"Anulado: {format_date(record.voided_at)}")
        if record.superseded_by_id:
            lines.append(f"Reemplazado por el cuadre #{record.superseded_by_id}")

    return "\n".join(lines)
