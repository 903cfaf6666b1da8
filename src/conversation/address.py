"""
Address heuristics for complaint locations.

Citizens give locations informally ("depan masjid al ikhlas", "gg. mawar
no 3"). ``is_vague_address`` is lenient: landmarks and street identifiers
are accepted, only bare or non-address text is flagged. The extractors pull
a location out of free text, either a message that is only an address or a
complaint sentence that also names the place.
"""

import logging
import re

logger = logging.getLogger(__name__)

_COMPLAINT_WORDS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"menumpuk", r"tumpukan", r"berserakan",
        r"rusak", r"berlubang", r"retak",
        r"mati", r"padam", r"tidak\s+menyala",
        r"tersumbat", r"banjir", r"genangan",
        r"tumbang", r"roboh", r"patah",
        r"menghalangi", r"menutupi",
        r"sampah", r"limbah", r"kotoran",
    )
]

_LANDMARKS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"masjid\s+\w+", r"mushola", r"gereja\s+\w+",
        r"sekolah\s+\w+", r"\bsd\s*n?\s*\d+", r"\bsmp\s*n?\s*\d*", r"\bsma\s*n?\s*\d*", r"\bsmk\s*n?\s*\d*",
        r"warung\s+\w+", r"toko\s+\w+", r"pasar\s+\w+", r"kantor\s+\w+",
        r"puskesmas", r"posyandu", r"lapangan\s+\w*", r"taman\s+\w+",
        r"makam\s+\w*", r"kuburan", r"pertigaan", r"perempatan", r"bundaran",
        r"jembatan\s+\w*", r"terminal\s+\w*", r"stasiun\s+\w*",
        r"bank\s+\w+", r"\batm\s+\w*", r"alfamart", r"indomaret", r"spbu",
    )
]

_LOCATION_IDENTIFIERS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bno\.?\s*\d+", r"\bnomor\s*\d+",
        r"\brt\s*\.?\s*\d+", r"\brw\s*\.?\s*\d+",
        r"\bblok\s*[a-z0-9]+", r"\bgang\s+\w+", r"\bgg\.?\s*\w+",
        r"\bkomplek\s+\w+", r"\bperumahan\s+\w+",
        r"\bjalan\s+(?!raya\b)[a-z]+", r"\bjln\.?\s+(?!raya\b)[a-z]+", r"\bjl\.?\s+(?!raya\b)[a-z]+",
        r"depan\s+\w+\s+\w+", r"sebelah\s+\w+", r"belakang\s+\w+", r"samping\s+\w+",
    )
]

_TOO_VAGUE = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^jalan\s*raya$", r"^jln\s*raya$", r"^jl\.?\s*raya$",
        r"^kelurahan$", r"^kecamatan$", r"^desa$",
        r"^di\s*sini$", r"^sini$",
    )
]

_COMPLAINT_KEYWORDS_RE = re.compile(
    r"menumpuk|tumpukan|rusak|berlubang|mati|padam|tersumbat|banjir|tumbang|roboh|sampah|limbah|genangan|menghalangi",
    re.IGNORECASE,
)
_ADDRESS_PREFIX_RE = re.compile(
    r"^(alamatnya|alamat\s*nya|alamat\s*saya|alamat\s*di|itu\s*alamat|ini\s*alamat)\s*", re.IGNORECASE
)
_PREPOSITION_RE = re.compile(r"^(di|ke)\s+", re.IGNORECASE)
_NON_ADDRESS_RE = re.compile(
    r"^(itu|ini|ya|iya|yak|yup|oke|ok|siap|sudah|cukup|proses|lanjut|hadeh|aduh|wah|ah|oh|hm|hmm"
    r"|tidak|bukan|bener|benar|salah|gimana|bagaimana|apa|kenapa|mengapa|kapan|dimana|siapa|mana"
    r"|sini|situ|sana|gitu|gini|dong|deh|sih|nih|tuh|lah|kan|kah|pun|juga|jadi|terus|lalu"
    r"|kemudian|makanya|soalnya|karena|sebab)$",
    re.IGNORECASE,
)
_FORMAL_ADDRESS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"jalan", r"jln", r"jl\.", r"\bno\b", r"nomor", r"\brt\b", r"\brw\b",
              r"gang", r"gg\.", r"komplek", r"perumahan", r"blok")
]
_INFORMAL_ADDRESS = [
    re.compile(r"dekat\s+\w{3,}|depan\s+\w{3,}|belakang\s+\w{3,}|samping\s+\w{3,}", re.IGNORECASE),
    re.compile(r"masjid\s+\w+|mushola\s+\w+|sekolah\s+\w+|kantor\s+\w+|warung\s+\w+|toko\s+\w+", re.IGNORECASE),
]

_NEAR = r"(?:depan|dekat|belakang|samping|sekitar)"
_LANDMARK_IN_COMPLAINT = [
    re.compile(rf"({_NEAR}\s+(?:sman?|smpn?|sdn?|smkn?)\s*\d*\s*\w+(?:\s+\w+)?)", re.IGNORECASE),
    re.compile(rf"({_NEAR}\s+(?:masjid|gereja|kantor|pasar|terminal|stasiun)\s+[\w\s]+)", re.IGNORECASE),
    re.compile(rf"({_NEAR}\s+puskesmas\s*[\w\s]*)", re.IGNORECASE),
]
_STREET_IN_COMPLAINT_RE = re.compile(
    r"\b(?:di|lokasi|alamat|tempat)\s+((?:jalan|jln|jl\.?)[^,]+)", re.IGNORECASE
)
_RT_RW_RE = re.compile(r"\brt\s*\.?\s*(\d{1,3})\s*/?\s*(?:rw\s*\.?\s*)?(\d{1,3})?", re.IGNORECASE)


def is_vague_address(address: str) -> bool:
    """True when an address needs the citizen's confirmation.

    Examples:
        >>> is_vague_address("jalan merdeka no 5")
        False
        >>> is_vague_address("jalan raya")
        True
        >>> is_vague_address("depan masjid al ikhlas")
        False
    """
    if not address:
        return True
    clean = address.lower().strip()

    if any(p.search(clean) for p in _COMPLAINT_WORDS):
        return True
    if any(p.search(clean) for p in _LANDMARKS):
        return False
    if any(p.search(clean) for p in _LOCATION_IDENTIFIERS):
        return False
    if any(p.search(clean) for p in _TOO_VAGUE):
        return True
    return len(clean) < 5


def extract_address(message: str) -> str:
    """Treat a message as a bare address reply; empty string when it is not one."""
    cleaned = _PREPOSITION_RE.sub("", _ADDRESS_PREFIX_RE.sub("", message.strip())).strip()
    if _NON_ADDRESS_RE.match(cleaned):
        return ""
    if _COMPLAINT_KEYWORDS_RE.search(cleaned) or len(cleaned) >= 100 or len(cleaned) < 5:
        return ""

    if any(p.search(cleaned) for p in _FORMAL_ADDRESS):
        logger.debug("Formal address detected: %s", cleaned)
        return cleaned

    if len(cleaned) >= 10 and any(p.search(cleaned) for p in _INFORMAL_ADDRESS):
        informal = re.sub(r"kak$", "", cleaned, flags=re.IGNORECASE).strip()
        if len(informal) >= 5 and re.search(r"[a-zA-Z]", informal):
            logger.debug("Informal address detected: %s", informal)
            return informal
    return ""


def extract_address_from_complaint(message: str) -> str:
    """Find the location inside a complaint sentence.

    Examples:
        >>> extract_address_from_complaint("jalan berlubang di jalan sudirman no 10")
        'jalan sudirman no 10'
        >>> extract_address_from_complaint("lampu jalan mati")
        ''
    """
    for pattern in _LANDMARK_IN_COMPLAINT:
        match = pattern.search(message)
        if match and len(match.group(1).strip()) >= 5:
            return match.group(1).strip()

    match = _STREET_IN_COMPLAINT_RE.search(message)
    if match:
        street = match.group(1).strip()
        if len(street) >= 10 and re.search(r"[a-zA-Z]", street):
            return street
    return ""


def extract_rt_rw(text: str) -> str:
    """Normalize an RT/RW mention to ``RT 02 RW 03`` form, or empty string.

    Examples:
        >>> extract_rt_rw("Jl. Merdeka RT 2/RW 3")
        'RT 02 RW 03'
    """
    match = _RT_RW_RE.search(text or "")
    if not match:
        return ""
    rt = match.group(1).zfill(2)
    rw = match.group(2)
    return f"RT {rt} RW {rw.zfill(2)}" if rw else f"RT {rt}"
