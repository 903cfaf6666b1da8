"""
Indonesian reply templates and formatters.

Everything the assistant says without a model lives here: quick replies
for greetings and yes/no answers, fallbacks when the model is unavailable,
prompts for missing complaint fields, and the formatters that turn case
service records into messages. Template selection is deterministic (the
first entry of each list); the extra entries document accepted variants.
"""

import logging
from typing import Optional
from urllib.parse import quote, urlencode

from src.errors import ErrorKind
from src.schemas.case_schema import CaseStatus, HistoryItem

logger = logging.getLogger(__name__)

GREETING_RESPONSES = [
    "Halo Kak! 👋 Saya Gana dari Kelurahan. Ada yang bisa dibantu hari ini?\n\n"
    "📋 Lapor masalah\n📝 Ajukan layanan\n📍 Info kelurahan",
    "Hai Kak! 👋 Selamat datang di layanan Kelurahan. Mau lapor masalah, ajukan layanan, atau tanya info?",
]

THANKS_RESPONSES = [
    "Sama-sama Kak! 😊 Senang bisa membantu. Kalau ada yang lain, langsung chat aja ya!",
    "Terima kasih kembali Kak! 🙏 Jangan sungkan kalau butuh bantuan lagi.",
]

CONFIRMATION_RESPONSES = [
    "Baik Kak, ada yang lain yang bisa dibantu?",
    "Siap Kak! Kalau ada pertanyaan lain, langsung tanya aja ya.",
]

REJECTION_RESPONSES = [
    "Baik Kak, tidak masalah. Ada yang lain yang bisa saya bantu?",
    "Oke Kak, dibatalkan ya. Mau dibantu yang lain?",
]

FALLBACK_TEMPLATES: dict[str, list[str]] = {
    "GREETING": GREETING_RESPONSES,
    "CREATE_COMPLAINT": [
        "Baik Kak, saya bantu catat laporan. Boleh sebutkan lokasinya di mana?",
        "Saya catat ya Kak. Masalahnya di lokasi mana tepatnya?",
    ],
    "CREATE_SERVICE_REQUEST": [
        "Baik Kak, layanan apa yang ingin diajukan?",
        "Oke Kak, mau ajukan layanan apa?",
    ],
    "CHECK_STATUS": [
        "Untuk cek status, boleh sebutkan nomor laporan atau layanan ya Kak? "
        "(contoh: LAP-20251201-001 atau LAY-20251201-001)",
    ],
    "CANCEL_COMPLAINT": [
        "Untuk membatalkan laporan, boleh sebutkan nomornya Kak? (contoh: LAP-20251201-001)",
    ],
    "HISTORY": [
        "Mohon tunggu sebentar ya Kak, saya cek riwayat laporan dan layanan Kakak...",
    ],
    "KNOWLEDGE_QUERY": [
        "Biar saya bantu cek yang tepat ya Kak. Informasi yang Kakak cari ini tentang *apa*? "
        "(contoh: jam buka, alamat kantor, syarat layanan tertentu, atau kontak RT/RW)\n\n"
        "Kalau perlu cepat, Kakak juga bisa hubungi kantor kelurahan di jam kerja ya.",
    ],
    "THANKS": THANKS_RESPONSES,
    "CONFIRMATION": CONFIRMATION_RESPONSES,
    "REJECTION": REJECTION_RESPONSES,
    "QUESTION": [
        "Halo! Saya Gana dari Kelurahan. Ada yang bisa saya bantu hari ini?",
    ],
    "UNKNOWN": [
        "Biar saya bantu dengan tepat ya Kak. Ini terkait apa?\n\n"
        "1️⃣ Lapor masalah (jalan rusak, lampu mati, sampah, banjir, dll)\n"
        "2️⃣ Urus layanan surat (SKTM, SKU, Domisili, Pengantar KTP/KK, dll)\n"
        "3️⃣ Cek status (kirim nomor LAP-... atau LAY-...)\n"
        "4️⃣ Info kelurahan (alamat, jam buka, kontak)\n\n"
        "Kakak pilih nomor atau tulis singkat kebutuhan Kakak ya.",
    ],
}

DEFAULT_ERROR_TEXT = (
    "Mohon maaf Pak/Bu, sistem kami sedang mengalami kendala. Silakan coba lagi nanti ya 🙏"
)

ERROR_TEMPLATES: dict[str, list[str]] = {
    "TIMEOUT": [
        "Maaf Kak, prosesnya agak lama nih. Coba kirim ulang pesannya ya 🙏",
        "Waduh, timeout Kak. Silakan coba lagi dalam beberapa saat.",
    ],
    "RATE_LIMIT": [
        "Maaf Kak, sistem sedang sibuk. Coba lagi dalam 1-2 menit ya.",
    ],
    "SERVICE_DOWN": [
        "Mohon maaf Kak, layanan sedang maintenance. Silakan coba lagi nanti 🙏",
    ],
    "DEFAULT": [DEFAULT_ERROR_TEXT],
}

MISSING_FIELD_PROMPTS: dict[str, list[str]] = {
    "kategori": ["Jenis masalah apa yang ingin dilaporkan Kak? (jalan rusak, lampu mati, sampah, dll)"],
    "alamat": ["Di mana lokasi masalahnya Kak? Sebutkan alamat atau patokan terdekat."],
    "deskripsi": ["Bisa jelaskan lebih detail masalahnya Kak?"],
    "service_slug": ["Layanan apa yang ingin Kakak ajukan?"],
}

# Re-ask prompts for each pending slot category, used by the smart fallback.
PENDING_SLOT_PROMPTS: dict[str, str] = {
    "address_confirmation": (
        "Alamatnya kurang spesifik Kak. Bisa tambahkan detail seperti RT/RW atau patokan terdekat?"
    ),
    "address_request": MISSING_FIELD_PROMPTS["alamat"][0],
    "cancel_confirmation": 'Menunggu konfirmasi Kakak. Ketik "ya" untuk lanjut atau "tidak" untuk batal.',
    "name_confirmation": 'Menunggu konfirmasi Kakak. Ketik "ya" untuk lanjut atau "tidak" untuk batal.',
    "service_form_offer": (
        "Apakah Bapak/Ibu ingin kami kirim link formulirnya sekarang? Balas *iya* atau *tidak* ya."
    ),
    "complaint_contact": "Mohon lengkapi data kontak Bapak/Ibu agar laporan bisa kami proses.",
}

FAREWELL_TEXT = "Sama-sama Pak/Bu. Terima kasih sudah menghubungi kami, semoga harinya menyenangkan 🙏"

DOWNSTREAM_UNAVAILABLE_TEXT = (
    "Mohon maaf Pak/Bu, layanan kami sedang mengalami gangguan. Silakan coba lagi nanti."
)
STATUS_CHECK_ERROR_TEXT = "Mohon maaf Pak/Bu, ada kendala saat mengecek status. Silakan coba lagi."


def fallback_for_intent(intent: Optional[str]) -> str:
    templates = FALLBACK_TEMPLATES.get(intent or "", FALLBACK_TEMPLATES["UNKNOWN"])
    return templates[0]


def missing_field_prompt(field_name: str) -> str:
    prompts = MISSING_FIELD_PROMPTS.get(field_name)
    if prompts:
        return prompts[0]
    return f"Boleh sebutkan {field_name.replace('_', ' ')} Kakak?"


def error_fallback(kind: Optional[str] = None) -> str:
    return ERROR_TEMPLATES.get(kind or "DEFAULT", ERROR_TEMPLATES["DEFAULT"])[0]


def classify_error_text(message: str) -> Optional[str]:
    """Error template key for an exception message, or None for the smart fallback.

    Examples:
        >>> classify_error_text("connect ETIMEDOUT 10.0.0.1:443")
        'TIMEOUT'
        >>> classify_error_text("upstream returned 503")
        'SERVICE_DOWN'
    """
    if "timeout" in message or "ETIMEDOUT" in message:
        return "TIMEOUT"
    if "rate limit" in message or "429" in message:
        return "RATE_LIMIT"
    if "ECONNREFUSED" in message or "503" in message:
        return "SERVICE_DOWN"
    return None


# -- status formatting -------------------------------------------------------

STATUS_MAP: dict[str, tuple[str, str]] = {
    "OPEN": ("OPEN", "Menunggu Diproses"),
    "PROCESS": ("PROCESS", "Sedang Diproses"),
    "DONE": ("DONE", "Selesai"),
    "CANCELED": ("CANCELED", "Dibatalkan"),
    "REJECT": ("REJECT", "Ditolak"),
    "BARU": ("OPEN", "Menunggu Diproses"),
    "PENDING": ("OPEN", "Menunggu Diproses"),
    "PROSES": ("PROCESS", "Sedang Diproses"),
    "SELESAI": ("DONE", "Selesai"),
    "DIBATALKAN": ("CANCELED", "Dibatalkan"),
    "DITOLAK": ("REJECT", "Ditolak"),
}


def status_key(status: str) -> str:
    normalized = (status or "").upper()
    return STATUS_MAP.get(normalized, (normalized, normalized))[0]


def status_label(status: str) -> str:
    """Human label for a case status.

    Examples:
        >>> status_label("proses")
        'Sedang Diproses'
        >>> status_label("ARCHIVED")
        'ARCHIVED'
    """
    normalized = (status or "").upper()
    return STATUS_MAP.get(normalized, (normalized, normalized or "UNKNOWN"))[1]


def format_complaint_status(case: CaseStatus) -> str:
    key, text = status_key(case.status), status_label(case.status)
    if key == "DONE":
        return f"Laporan {case.case_id} telah *{text}*.\nCatatan penanganan: {case.admin_notes or '-'}"
    if key == "REJECT":
        return f"Laporan {case.case_id} *{text}*.\nAlasan penolakan: {case.admin_notes or '-'}"
    if key == "CANCELED":
        note = case.admin_notes or "Dibatalkan oleh masyarakat"
        return f"Laporan {case.case_id} telah *{text}*.\nKeterangan: {note}"
    return f"Status laporan {case.case_id} saat ini: *{text}*."


def format_service_status(case: CaseStatus) -> str:
    key, text = status_key(case.status), status_label(case.status)
    message = f"Baik Pak/Bu, status layanan {case.case_id} saat ini: *{text}*."
    if key == "OPEN":
        message += "\nPermohonan sedang menunggu untuk diproses."
    elif key == "PROCESS":
        message += "\nPermohonan Anda sedang diproses oleh petugas desa."
    elif key == "DONE" and case.admin_notes:
        message += f"\n\nCatatan dari petugas desa:\n{case.admin_notes}"
    elif key == "REJECT":
        message += f"\n\nAlasan penolakan:\n{case.admin_notes or '-'}"
    elif key == "CANCELED":
        message += f"\n\nKeterangan: {case.admin_notes or 'Dibatalkan'}"
    return message


def format_status(case: CaseStatus) -> str:
    if case.case_type == "service":
        return format_service_status(case)
    return format_complaint_status(case)


def _case_label(case_type: str) -> str:
    return "laporan" if case_type == "complaint" else "layanan"


def format_cancel_success(case_type: str, case_id: str, note: str = "") -> str:
    label = _case_label(case_type).capitalize()
    return f"{label} {case_id} telah DIBATALKAN.\nKeterangan: {note or 'Dibatalkan oleh masyarakat'}"


def format_cancel_error(case_type: str, case_id: str, kind: Optional[ErrorKind]) -> str:
    label = _case_label(case_type)
    if kind == ErrorKind.DOWNSTREAM_NOT_FOUND:
        return f"Mohon maaf Pak/Bu, kami tidak menemukan {label} dengan nomor *{case_id}*."
    if kind == ErrorKind.DOWNSTREAM_NOT_OWNER:
        return f"Mohon maaf Pak/Bu, {label} *{case_id}* ini bukan milik Anda, jadi tidak bisa dibatalkan."
    if kind == ErrorKind.DOWNSTREAM_LOCKED:
        return (
            f"Mohon maaf Pak/Bu, {label} *{case_id}* sudah tidak bisa dibatalkan "
            "karena statusnya sudah final."
        )
    return f"Mohon maaf Pak/Bu, ada kendala saat membatalkan {label}. Silakan coba lagi."


def format_status_error(case_type: str, case_id: str, kind: Optional[ErrorKind]) -> str:
    label = _case_label(case_type)
    if kind == ErrorKind.DOWNSTREAM_NOT_FOUND:
        return f"Mohon maaf Pak/Bu, kami tidak menemukan {label} dengan nomor *{case_id}*."
    if kind == ErrorKind.DOWNSTREAM_NOT_OWNER:
        return f"Mohon maaf Pak/Bu, {label} *{case_id}* bukan milik Anda."
    return STATUS_CHECK_ERROR_TEXT


def format_history(items: list[HistoryItem], total: Optional[int] = None) -> str:
    if not items:
        return "Belum ada laporan atau layanan. Silakan kirim pesan untuk memulai."

    for case_type, header, default_desc in (
        ("complaint", "Berikut laporan yang pernah Anda kirimkan:", "Laporan"),
        ("service", "Berikut layanan yang pernah Anda ajukan:", "Layanan"),
    ):
        rows = [item for item in items if item.case_type == case_type][:5]
        if rows:
            lines = [
                f"{row.display_id} – {row.description.strip() or default_desc} – {status_label(row.status)}"
                for row in rows
            ]
            return header + "\n\n" + "\n".join(lines)
    return f"Berikut riwayat Anda ({total if total is not None else len(items)})."


# -- photos ------------------------------------------------------------------

def photo_received_note(count: int) -> str:
    return f"\n\n{count} foto sudah kami terima." if count else ""


def photo_attached_note(count: int) -> str:
    if count <= 0:
        return ""
    if count == 1:
        return "\nFoto pendukung sudah kami terima."
    return f"\n{count} foto pendukung sudah kami terima."


PHOTO_REMINDER = (
    "\n\n📷 Tip: Bapak/Ibu bisa kirim foto pendukung untuk mempercepat penanganan. "
    "Cukup kirim foto kapan saja."
)


# -- public form links -------------------------------------------------------

def to_wa_number(user_id: str) -> str:
    """Normalize a WhatsApp user id to the ``628...`` form.

    Examples:
        >>> to_wa_number("081234567890")
        '6281234567890'
    """
    digits = "".join(ch for ch in user_id if ch.isdigit())
    if digits.startswith("08"):
        return "62" + digits[1:]
    if digits.startswith("8"):
        return "62" + digits
    return digits


def _is_valid_wa_number(value: str) -> bool:
    return value.startswith("628") and 11 <= len(value) <= 15


def _identity_params(user_id: str, channel: str) -> dict[str, str]:
    if channel == "webchat":
        return {"session": user_id}
    wa_number = to_wa_number(user_id)
    return {"wa": wa_number} if _is_valid_wa_number(wa_number) else {}


def build_service_form_url(base_url: str, service_slug: str, user_id: str, channel: str) -> str:
    url = f"{base_url.rstrip('/')}/form/{quote(service_slug)}"
    params = _identity_params(user_id, channel)
    return f"{url}?{urlencode(params)}" if params else url


def build_edit_form_url(
    base_url: str, request_number: str, token: str, user_id: str, channel: str
) -> str:
    url = f"{base_url.rstrip('/')}/form/edit/{quote(request_number)}"
    params = {"token": token, **_identity_params(user_id, channel)}
    return f"{url}?{urlencode(params)}"
