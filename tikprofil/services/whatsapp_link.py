from __future__ import annotations

from typing import Iterable, Optional
from urllib.parse import quote

from tikprofil.core.config import PUBLIC_BASE_DOMAIN, WHATSAPP_COUNTRY_CODE
from tikprofil.core.money import format_try, to_decimal
from tikprofil.utils.text import digits_only, full_sanitize


class MissingWhatsAppNumber(ValueError):
    pass


def normalize_phone(phone: str | None, country_code: str = WHATSAPP_COUNTRY_CODE) -> str:
    digits = digits_only(phone)
    if not digits:
        raise MissingWhatsAppNumber("İşletmenin WhatsApp numarası tanımlı değil.")
    # local format 05xx...
    if digits.startswith("0"):
        digits = digits.lstrip("0")
    if digits.startswith(country_code):
        return digits
    return f"{country_code}{digits}"


def build_order_message(
    *,
    business_name: str,
    customer_name: str,
    customer_phone: str,
    items: Iterable,
    note: Optional[str] = None,
) -> str:
    lines = []
    total = to_decimal(0)
    for item in items:
        line_total = to_decimal(item.price) * int(item.quantity)
        total += line_total
        lines.append(f"• {item.quantity}x {full_sanitize(item.name)} - {format_try(line_total)}")

    parts = [
        "🍔 *SİPARİŞ*",
        "",
        f"📍 *İşletme:* {business_name}",
        "",
        f"👤 *Müşteri:* {full_sanitize(customer_name)}",
        f"📱 *Telefon:* {digits_only(customer_phone)}",
        "",
        "📦 *Sipariş Detayı:*",
        *lines,
        "",
        f"💰 *Toplam:* {format_try(total)}",
    ]
    clean_note = full_sanitize(note)
    if clean_note:
        parts.extend(["", f"📝 *Not:* {clean_note}"])
    parts.extend(["", "_Tık Profil üzerinden gönderilmiştir_", f"https://{PUBLIC_BASE_DOMAIN}"])
    return "\n".join(parts)


def build_whatsapp_url(phone: str, message: str) -> str:
    return f"https://wa.me/{normalize_phone(phone)}?text={quote(message, safe='')}"
