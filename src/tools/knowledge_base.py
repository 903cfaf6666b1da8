"""
In-memory knowledge base.

A handful of village facts (office hours, location, services, general
requirements, fees) searched by keyword overlap. Used by the console demo
and tests in place of the knowledge-retrieval service.
"""

import logging
import re
from typing import Optional, TypedDict

from src.schemas.case_schema import KnowledgeResult

logger = logging.getLogger(__name__)


class KnowledgeEntry(TypedDict):
    category: str
    title: str
    keywords: list[str]
    content: str


DEFAULT_ENTRIES: list[KnowledgeEntry] = [
    {
        "category": "jadwal",
        "title": "Jam Operasional Kelurahan",
        "keywords": ["jam", "buka", "tutup", "operasional", "hari", "kerja", "libur"],
        "content": (
            "Senin - Jumat: 08.00 - 15.00 WIB. Sabtu: 08.00 - 12.00 WIB. "
            "Minggu dan hari libur: tutup. Istirahat: 12.00 - 13.00 WIB."
        ),
    },
    {
        "category": "kontak",
        "title": "Lokasi dan Kontak Kantor Kelurahan",
        "keywords": ["alamat", "lokasi", "kantor", "maps", "telepon", "kontak", "hubungi", "nomor"],
        "content": (
            "Alamat: Jl. Raya Kelurahan No. 1, sebelah Masjid Al-Ikhlas. "
            "Telepon: (022) 123-4567. WhatsApp: 0812-3456-7890."
        ),
    },
    {
        "category": "layanan",
        "title": "Layanan yang Tersedia",
        "keywords": ["layanan", "surat", "pengantar", "keterangan", "izin"],
        "content": (
            "Surat Keterangan: SKD (Domisili), SKTM (Tidak Mampu), SKU (Usaha). "
            "Surat Pengantar: SPKTP, SPKK, SPSKCK, SPAKTA. Izin: IKR (Izin Keramaian)."
        ),
    },
    {
        "category": "prosedur",
        "title": "Syarat Umum Pengurusan Surat",
        "keywords": ["syarat", "persyaratan", "dokumen", "berkas", "bawa", "prosedur", "cara"],
        "content": (
            "Dokumen yang biasanya diperlukan: KTP asli + fotokopi, Kartu Keluarga asli + "
            "fotokopi, Surat Pengantar RT/RW. Syarat tambahan tergantung jenis surat."
        ),
    },
    {
        "category": "biaya",
        "title": "Informasi Biaya",
        "keywords": ["biaya", "bayar", "tarif", "gratis", "harga", "pungutan"],
        "content": (
            "Semua layanan surat di kelurahan GRATIS (tidak dipungut biaya). "
            "Jika ada yang meminta bayaran, laporkan ke hotline 0800-123-4567."
        ),
    },
]

_WORD_RE = re.compile(r"\w+")


class InMemoryKnowledgeService:
    """Keyword-overlap search over a list of entries."""

    def __init__(self, entries: Optional[list[KnowledgeEntry]] = None, limit: int = 3) -> None:
        self.entries = list(DEFAULT_ENTRIES if entries is None else entries)
        self.limit = limit
        self.queries: list[str] = []

    def _score(self, entry: KnowledgeEntry, words: set[str], categories: Optional[list[str]]) -> int:
        score = sum(1 for keyword in entry["keywords"] if keyword in words)
        if categories and entry["category"] in categories:
            score += 2
        return score

    async def search(self, query: str, categories: Optional[list[str]] = None) -> KnowledgeResult:
        self.queries.append(query)
        words = set(_WORD_RE.findall(query.lower()))
        ranked = sorted(
            ((self._score(entry, words, categories), entry) for entry in self.entries),
            key=lambda pair: pair[0],
            reverse=True,
        )
        hits = [entry for score, entry in ranked if score > 0][: self.limit]
        if not hits:
            return KnowledgeResult()

        context = "\n\n".join(
            f"[{entry['category'].upper()}] {entry['title']}\n{entry['content']}" for entry in hits
        )
        confidence = "high" if ranked[0][0] >= 2 else "medium"
        logger.debug("Knowledge search %r matched %d entr(ies)", query[:50], len(hits))
        return KnowledgeResult(context=context, total=len(hits), confidence=confidence)
