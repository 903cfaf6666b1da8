"""Village administrative services, complaint categories and aliases."""

import logging
import re
from typing import Optional

from src.schemas.case_schema import ComplaintType, ServiceInfo, ServiceRequirement

logger = logging.getLogger(__name__)

_KTP_KK = [
    ServiceRequirement(label="KTP asli + fotokopi", order_index=1),
    ServiceRequirement(label="Kartu Keluarga (KK) asli + fotokopi", order_index=2),
    ServiceRequirement(label="Surat Pengantar RT/RW", order_index=3),
]

SERVICE_CATALOG: dict[str, dict] = {
    "surat-keterangan-domisili": {
        "code": "SKD",
        "name": "Surat Keterangan Domisili",
        "description": "Keterangan tempat tinggal untuk keperluan administrasi.",
        "mode": "online",
        "extra": [],
    },
    "surat-keterangan-tidak-mampu": {
        "code": "SKTM",
        "name": "Surat Keterangan Tidak Mampu",
        "description": "Keterangan keluarga tidak mampu untuk bantuan sosial, sekolah atau kesehatan.",
        "mode": "online",
        "extra": ["Foto rumah tampak depan"],
    },
    "surat-keterangan-usaha": {
        "code": "SKU",
        "name": "Surat Keterangan Usaha",
        "description": "Keterangan memiliki usaha di wilayah desa/kelurahan.",
        "mode": "online",
        "extra": ["Foto tempat usaha"],
    },
    "surat-keterangan-belum-menikah": {
        "code": "SKBM",
        "name": "Surat Keterangan Belum Menikah",
        "description": "Keterangan status belum menikah.",
        "mode": "online",
        "extra": [],
    },
    "surat-pengantar-ktp": {
        "code": "SPKTP",
        "name": "Surat Pengantar KTP",
        "description": "Pengantar pembuatan atau perpanjangan KTP ke Disdukcapil.",
        "mode": "online",
        "extra": [],
    },
    "surat-pengantar-kk": {
        "code": "SPKK",
        "name": "Surat Pengantar Kartu Keluarga",
        "description": "Pengantar pembuatan atau perubahan Kartu Keluarga.",
        "mode": "online",
        "extra": [],
    },
    "surat-pengantar-skck": {
        "code": "SPSKCK",
        "name": "Surat Pengantar SKCK",
        "description": "Pengantar pembuatan SKCK ke Polsek/Polres.",
        "mode": "online",
        "extra": ["Pas foto 4x6 latar merah"],
    },
    "surat-pengantar-akta": {
        "code": "SPAKTA",
        "name": "Surat Pengantar Akta",
        "description": "Pengantar pembuatan akta kelahiran atau kematian.",
        "mode": "offline",
        "extra": ["Surat keterangan lahir/kematian dari bidan atau rumah sakit"],
    },
    "izin-keramaian": {
        "code": "IKR",
        "name": "Izin Keramaian",
        "description": "Izin menyelenggarakan acara yang mengundang keramaian.",
        "mode": "offline",
        "extra": ["Susunan acara"],
    },
    "surat-keterangan-kematian": {
        "code": "SKK",
        "name": "Surat Keterangan Kematian",
        "description": "Keterangan kematian warga untuk pengurusan akta kematian.",
        "mode": "online",
        "extra": ["Surat keterangan kematian dari rumah sakit (jika ada)"],
    },
    "surat-pengantar-pindah": {
        "code": "SPP",
        "name": "Surat Pengantar Pindah",
        "description": "Pengantar pindah domisili ke luar desa/kelurahan.",
        "mode": "offline",
        "extra": [],
    },
}

SERVICE_ALIASES: dict[str, str] = {
    "domisili": "surat-keterangan-domisili",
    "tidak mampu": "surat-keterangan-tidak-mampu",
    "usaha": "surat-keterangan-usaha",
    "belum menikah": "surat-keterangan-belum-menikah",
    "ktp": "surat-pengantar-ktp",
    "kartu keluarga": "surat-pengantar-kk",
    "kk": "surat-pengantar-kk",
    "skck": "surat-pengantar-skck",
    "akta": "surat-pengantar-akta",
    "keramaian": "izin-keramaian",
    "kematian": "surat-keterangan-kematian",
    "pindah": "surat-pengantar-pindah",
}

DEFAULT_COMPLAINT_TYPES = [
    ComplaintType(slug="jalan_rusak", label="jalan rusak"),
    ComplaintType(slug="lampu_mati", label="lampu jalan mati"),
    ComplaintType(slug="sampah", label="sampah menumpuk"),
    ComplaintType(slug="drainase", label="saluran air tersumbat"),
    ComplaintType(slug="pohon_tumbang", label="pohon tumbang", is_urgent=True),
    ComplaintType(slug="banjir", label="banjir", is_urgent=True),
    ComplaintType(slug="fasilitas_rusak", label="fasilitas umum rusak"),
]


def _build_service(slug: str, entry: dict) -> ServiceInfo:
    requirements = list(_KTP_KK) + [
        ServiceRequirement(label=label, order_index=len(_KTP_KK) + i + 1)
        for i, label in enumerate(entry["extra"])
    ]
    return ServiceInfo(
        slug=slug,
        name=entry["name"],
        code=entry["code"],
        description=entry["description"],
        mode=entry["mode"],
        requirements=requirements,
    )


class ServiceCatalog:
    """Lookup by slug, code or alias over a fixed set of services."""

    def __init__(self, services: Optional[list[ServiceInfo]] = None) -> None:
        if services is None:
            services = [_build_service(slug, entry) for slug, entry in SERVICE_CATALOG.items()]
        self._by_slug = {service.slug: service for service in services}

    def all(self) -> list[ServiceInfo]:
        return list(self._by_slug.values())

    def get(self, slug_or_code: str) -> Optional[ServiceInfo]:
        key = (slug_or_code or "").strip()
        if key in self._by_slug:
            return self._by_slug[key]
        for service in self._by_slug.values():
            if service.code and service.code.lower() == key.lower():
                return service
        return None

    def match(self, query: str) -> Optional[ServiceInfo]:
        """Resolve free text ("surat domisili", "SKTM") to a service, or None."""
        normalized = query.lower().strip()
        for service in self._by_slug.values():
            if service.code and re.search(rf"\b{service.code.lower()}\b", normalized):
                return service
        for alias, slug in SERVICE_ALIASES.items():
            if re.search(rf"\b{re.escape(alias)}\b", normalized):
                return self._by_slug.get(slug)
        for service in self._by_slug.values():
            if service.name.lower() in normalized:
                return service
        return None

    def search(self, query: str, limit: int = 5) -> list[ServiceInfo]:
        matched = self.match(query)
        if matched:
            return [matched]
        words = re.findall(r"\w{4,}", query.lower())
        hits = [
            service for service in self._by_slug.values()
            if any(w in service.name.lower() or w in service.description.lower() for w in words)
        ]
        return hits[:limit]
