"""
Regex tables for the fast intent classifier.

All patterns are compiled case-insensitive and matched against the raw
message (``search``, not ``match``); anchored patterns carry their own
``^``/``$``. Indonesian chat spelling variants (gak/nggak/enggak,
udah/sudah ...) are listed explicitly.
"""

import re
from typing import Optional

_FLAGS = re.IGNORECASE


def _compile(*patterns: str) -> list[re.Pattern]:
    return [re.compile(p, _FLAGS) for p in patterns]


GREETING_PATTERNS = _compile(
    r"^(halo|hai|hi|hello|hey)[\s!.,]*$",
    r"^selamat\s+(pagi|siang|sore|malam)[\s!.,]*$",
    r"^(assalamualaikum|assalamu'?alaikum)[\s!.,]*$",
    r"^(permisi|maaf\s+ganggu)[\s!.,]*$",
    r"^(p|pagi|siang|sore|malam)[\s!.,]*$",
)

CONFIRMATION_PATTERNS = _compile(
    r"^(ya|iya|yap|yup|yoi|oke|ok|okay|okey|baik|siap|betul|benar|bener)[\s!.,]*$",
    r"^(lanjut|lanjutkan|proses|setuju|boleh|bisa|gas|gaskan)[\s!.,]*$",
    r"^(sudah|udah|cukup|itu\s+saja|itu\s+aja|segitu\s+aja)[\s!.,]*$",
)

REJECTION_PATTERNS = _compile(
    r"^(tidak|nggak|gak|ga|enggak|engga|no|nope|jangan|batal|cancel)[\s!.,]*$",
    r"^(belum|nanti\s+dulu|nanti\s+aja|skip)[\s!.,]*$",
)

THANKS_PATTERNS = _compile(
    r"^(terima\s*kasih|makasih|thanks|thank\s*you|thx|tq)[\s!.,]*$",
    r"^(ok\s+)?makasih[\s!.,]*$",
    r"^(mantap|keren|bagus|good)[\s!.,]*$",
)

CREATE_COMPLAINT_PATTERNS = _compile(
    r"\b(mau\s+)?lapor(kan)?\s+",
    r"\b(ada\s+)?(masalah|keluhan|aduan|komplain)\s+(di|dengan|tentang)",
    r"\b(jalan|aspal)\s+(rusak|berlubang|retak|hancur|jelek)\b",
    r"\b(lampu|penerangan)\s+(jalan\s+)?(mati|padam|rusak|tidak\s+menyala)\b",
    r"\b(sampah)\s+(menumpuk|berserakan|banyak|tidak\s+diangkut)\b",
    r"\b(saluran|got|selokan|drainase)\s+(tersumbat|mampet|macet|buntu)\b",
    r"\b(pohon)\s+(tumbang|roboh|patah|miring)\b",
    r"\b(ada\s+)?banjir\s+(di|besar|parah)",
    r"\b(mau\s+lapor\s+)?banjir\b",
    r"\b(fasilitas|taman|pagar)\s+(rusak|jelek)\b",
)

CREATE_SERVICE_REQUEST_PATTERNS = _compile(
    r"\b(mau|ingin)\s+(buat|bikin|urus|ajukan)\s+(layanan|surat|dokumen)\b",
    r"\b(daftar|ajukan)\s+(layanan|surat|dokumen)\b",
    r"\b(perlu|butuh)\s+(surat|dokumen)\b",
)

UPDATE_SERVICE_REQUEST_PATTERNS = _compile(
    r"\b(ubah|edit|perbarui|update)\s+(layanan|permohonan|pengajuan|surat)\b",
    r"\b(ubah|edit)\s+(data|berkas|form)\s+(layanan|permohonan)\b",
)

UPDATE_COMPLAINT_PATTERNS = _compile(
    r"\b(ubah|ganti|perbarui|update)\s+(laporan|pengaduan|keluhan)\b",
    r"\b(ubah|ganti)\s+(alamat|deskripsi|keterangan)\s+laporan\b",
)

CHECK_STATUS_PATTERNS = _compile(
    r"\b(cek|check|lihat|gimana|bagaimana)\s+(status|perkembangan|progress)\b",
    r"\b(status)\s+(laporan|layanan|permohonan|pengaduan)\b",
    r"\b(sudah|udah)\s+(sampai\s+mana|diproses|ditangani)\b",
)

CANCEL_PATTERNS = _compile(
    r"\b(batalkan|cancel|batal)\s+(laporan|pengaduan)\b",
    r"\b(mau|ingin)\s+(batalkan|cancel|batal)\b",
    r"\b(hapus)\s+(laporan|pengaduan)\b",
)

CANCEL_SERVICE_PATTERNS = _compile(
    r"\b(batalkan|cancel|batal)\s+(layanan|permohonan|surat|pengajuan)\b",
    r"\b(hapus)\s+(layanan|permohonan|surat)\b",
)

HISTORY_PATTERNS = _compile(
    r"\b(riwayat|history|daftar)\s+(laporan|layanan|permohonan|saya)\b",
    r"\b(laporan|layanan)\s+(saya|ku|gue|gw)\b",
    r"\b(lihat|cek)\s+(semua\s+)?(laporan|layanan)\b",
)

KNOWLEDGE_QUERY_PATTERNS = _compile(
    r"\b(jam|waktu)\s+(buka|tutup|operasional|kerja|pelayanan)\b",
    r"\b(buka|tutup)\s+(jam\s+)?berapa\b",
    r"\b(hari\s+)?(libur|kerja)\b",
    r"\bkapan\s+(buka|tutup)\b",
    r"\b(dimana|di\s+mana|lokasi|alamat)\s+(kantor|kelurahan)\b",
    r"\b(kantor|kelurahan)\s+(dimana|di\s+mana)\b",
    r"\b(apa\s+)?(syarat|persyaratan|dokumen|berkas)\b",
    r"\b(biaya|tarif|harga|bayar)\s+(berapa|nya)\b",
    r"\b(gratis|free|tidak\s+bayar)\b",
    r"\bperlu\s+bawa\s+apa\b",
    r"\b(bagaimana|gimana)\s+(cara|proses|prosedur)\b",
    r"\b(cara|proses|prosedur|langkah)\s+(buat|bikin|urus|daftar)\b",
    r"\b(berapa\s+lama|durasi|waktu\s+proses)\b",
    r"\blayanan\s*(apa\s*saja|yang\s*tersedia)\b",
    r"\bapa\s*saja\s*(layanan|surat)\b",
    r"\bjenis\s*(layanan|surat)\b",
    r"\bbisa\s*(urus|buat)\s*apa\b",
)

# Knowledge sub-categories, used to narrow the retrieval query.
KNOWLEDGE_CATEGORY_PATTERNS: dict[str, list[re.Pattern]] = {
    "jadwal": _compile(
        r"jam\s*(buka|operasional|kerja|pelayanan)",
        r"buka\s*jam\s*berapa",
        r"kapan\s*(buka|tutup)",
        r"hari\s*apa\s*(buka|libur)",
    ),
    "kontak": _compile(
        r"dimana\s*(kantor|lokasi|alamat)",
        r"alamat\s*(kantor|kelurahan)",
        r"lokasi\s*(kantor|kelurahan)",
        r"kantor\s*(dimana|di\s*mana)",
    ),
    "layanan": _compile(
        r"layanan\s*(apa\s*saja|yang\s*tersedia)",
        r"apa\s*saja\s*(layanan|surat)",
        r"jenis\s*(layanan|surat)",
        r"bisa\s*(urus|buat)\s*apa",
    ),
    "prosedur": _compile(
        r"syarat\s*(umum|pengurusan)",
        r"apa\s*saja\s*syarat",
        r"dokumen\s*apa\s*(saja|yang)",
        r"perlu\s*bawa\s*apa",
    ),
    "biaya": _compile(
        r"biaya|tarif|harga|bayar",
        r"berapa\s*(biaya|harga)",
        r"gratis\s*(atau|apa)",
        r"ada\s*biaya",
    ),
}

COMPLAINT_CATEGORY_PATTERNS: dict[str, list[re.Pattern]] = {
    "jalan_rusak": _compile(
        r"\b(jalan|aspal)\s+(rusak|berlubang|retak|hancur|jelek)\b",
        r"\b(lubang|kerusakan)\s+(jalan|aspal)\b",
    ),
    "lampu_mati": _compile(
        r"\b(lampu|penerangan)\s+(jalan\s+)?(mati|padam|rusak|tidak\s+menyala)\b",
        r"\b(pju|lampu\s+jalan)\s+(mati|padam)\b",
    ),
    "sampah": _compile(
        r"\b(sampah)\s+(menumpuk|berserakan|banyak|tidak\s+diangkut)\b",
        r"\b(tumpukan|timbunan)\s+(sampah)\b",
    ),
    "drainase": _compile(
        r"\b(saluran|got|selokan|drainase)\s+(tersumbat|mampet|macet|buntu)\b",
        r"\b(air|genangan)\s+(tidak\s+mengalir|meluap)\b",
    ),
    "pohon_tumbang": _compile(
        r"\b(pohon)\s+(tumbang|roboh|patah|miring|bahaya)\b",
    ),
    "banjir": _compile(
        r"\b(banjir|genangan\s+air|air\s+naik)\b",
    ),
    "fasilitas_rusak": _compile(
        r"\b(fasilitas|taman|pagar|bangku|trotoar)\s+(rusak|jelek|hancur)\b",
    ),
}

SERVICE_CODE_PATTERNS: dict[str, list[re.Pattern]] = {
    "SKD": _compile(r"\b(skd|domisili|keterangan\s+domisili)\b"),
    "SKTM": _compile(r"\b(sktm|tidak\s+mampu|keterangan\s+tidak\s+mampu)\b"),
    "SKU": _compile(r"\b(sku|usaha|keterangan\s+usaha)\b"),
    "SKBM": _compile(r"\b(skbm|belum\s+menikah|belum\s+nikah)\b"),
    "SPKTP": _compile(r"\b(spktp|pengantar\s+ktp|ktp\s+baru|perpanjang\s+ktp)\b"),
    "SPKK": _compile(r"\b(spkk|pengantar\s+kk|kartu\s+keluarga)\b"),
    "SPSKCK": _compile(r"\b(spskck|pengantar\s+skck|skck)\b"),
    "SPAKTA": _compile(r"\b(spakta|pengantar\s+akta|akta\s+kelahiran|akta\s+kematian)\b"),
    "IKR": _compile(r"\b(ikr|izin\s+keramaian|acara)\b"),
    "SKK": _compile(r"\b(skk|keterangan\s+kematian)\b"),
    "SPP": _compile(r"\b(spp|pengantar\s+pindah|pindah\s+domisili)\b"),
}

COMPLAINT_ID_RE = re.compile(r"\b(LAP-\d{8}-\d{3})\b", _FLAGS)
SERVICE_REQUEST_ID_RE = re.compile(r"\b(LAY-\d{8}-\d{3})\b", _FLAGS)
NIK_RE = re.compile(r"\b(\d{16})\b")
PHONE_RE = re.compile(r"\b(08\d{8,12})\b")


def matches_any(message: str, patterns: list[re.Pattern]) -> bool:
    return any(p.search(message) for p in patterns)


def find_matching_category(message: str, table: dict[str, list[re.Pattern]]) -> Optional[str]:
    """First key of ``table`` whose patterns match ``message``."""
    for category, patterns in table.items():
        if matches_any(message, patterns):
            return category
    return None
