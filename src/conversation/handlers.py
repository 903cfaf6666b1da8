"""
Intent handlers: turn a resolved intent into case-service calls and a reply.

Handlers own the multi-turn complaint flow (category, address, vague-address
confirmation, reporter contact, photos), cancellation with confirmation,
status and history lookups, service information and the public form links
for service requests. Downstream failures are translated into Indonesian
replies here; nothing below the orchestrator sees a ``DownstreamError``.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from src.clients.interfaces import CaseService
from src.config import ServiceConfig, settings
from src.conversation.address import (
    extract_address,
    extract_address_from_complaint,
    extract_rt_rw,
    is_vague_address,
)
from src.conversation.confirmation import ConfirmationClassifier, ConfirmationDecision
from src.conversation.fast_classifier import classify, extract_phone
from src.conversation.intent_patterns import (
    COMPLAINT_CATEGORY_PATTERNS,
    find_matching_category,
)
from src.conversation.name_gate import extract_name
from src.conversation.session_state import SessionStateStore
from src.conversation.templates import (
    CONFIRMATION_RESPONSES,
    DOWNSTREAM_UNAVAILABLE_TEXT,
    PHOTO_REMINDER,
    REJECTION_RESPONSES,
    THANKS_RESPONSES,
    build_edit_form_url,
    build_service_form_url,
    fallback_for_intent,
    format_cancel_error,
    format_cancel_success,
    format_history,
    format_status,
    format_status_error,
    missing_field_prompt,
    photo_attached_note,
    photo_received_note,
)
from src.errors import DownstreamError, ErrorKind
from src.schemas.case_schema import CaseType, ComplaintDraft, ComplaintType, ServiceInfo
from src.schemas.conversation_schema import HistoryMessage
from src.schemas.model_reply import ComplaintFields, ComplaintRefFields, ServiceFields
from src.schemas.slots import (
    AwaitingAddress,
    AwaitingAddressConfirmation,
    AwaitingCancelConfirmation,
    AwaitingComplaintContact,
    AwaitingServiceFormOffer,
)
from src.tools.profile_store import ProfileStore
from src.utils import normalize_phone, slug_to_label

logger = logging.getLogger(__name__)

MISSING_CATEGORY_TEXT = (
    "Mohon jelaskan jenis masalah yang ingin dilaporkan agar kami bisa membantu menindaklanjuti."
)
ADDRESS_REQUEST_TEXT = "Baik Pak/Bu, mohon jelaskan lokasi {label} tersebut."
URGENT_ADDRESS_REQUEST_TEXT = "Baik Pak/Bu, mohon segera kirimkan alamat lokasi kejadian."
VAGUE_ADDRESS_TEXT = (
    'Alamat "{alamat}" sepertinya kurang spesifik untuk laporan {label}.{photo_note}\n\n'
    "Apakah Bapak/Ibu ingin menambahkan detail alamat (nomor rumah, RT/RW, nama jalan lengkap) "
    'atau balas "YA" untuk tetap menggunakan alamat ini?'
)
ADDRESS_REJECTED_TEXT = (
    "Baik Pak/Bu, silakan berikan alamat yang lebih spesifik (contoh: Jl. Merdeka No. 5 RT 02/RW 03), "
    'atau ketik "batal" jika ingin membatalkan laporan.'
)
COMPLAINT_ABORTED_TEXT = "Baik Pak/Bu, laporan tidak jadi kami proses. Ada yang bisa kami bantu lagi?"
CONTACT_NAME_TEXT = "Baik Pak/Bu, sebelum laporan diproses, boleh kami tahu nama Bapak/Ibu?{photo_note}"
CONTACT_PHONE_TEXT = (
    "Baik Pak/Bu, mohon informasikan nomor telepon yang dapat dihubungi agar petugas bisa "
    "menghubungi Bapak/Ibu terkait laporan ini.{photo_note}"
)
COMPLAINT_CREATED_TEXT = (
    "Terima kasih.\nLaporan telah kami terima dengan nomor {complaint_id}."
    "{status_line}{photo_note}{photo_reminder}\n\nJika ada laporan lain, silakan langsung sampaikan."
)

UPDATE_NEEDS_ID_TEXT = "Mohon sebutkan nomor laporan yang ingin diperbarui (contoh: LAP-20251201-001)."
UPDATE_NEEDS_FIELDS_TEXT = "Baik, silakan sampaikan keterangan tambahan yang ingin ditambahkan."
UPDATE_DONE_TEXT = "Terima kasih.\nKeterangan laporan {complaint_id} telah diperbarui."
UPDATE_ERROR_TEXTS = {
    ErrorKind.DOWNSTREAM_NOT_FOUND: "Hmm, laporan *{case_id}* tidak ditemukan. Coba cek kembali nomor laporan ya.",
    ErrorKind.DOWNSTREAM_NOT_OWNER: "Mohon maaf Pak/Bu, laporan *{case_id}* bukan milik Anda, jadi tidak bisa diubah.",
    ErrorKind.DOWNSTREAM_LOCKED: "Laporan *{case_id}* sudah selesai/dibatalkan/ditolak sehingga tidak bisa diubah.",
}

CANCEL_NEEDS_ID_TEXT = {
    "complaint": "Untuk membatalkan laporan, mohon sertakan nomornya ya Pak/Bu (contoh: LAP-20251201-001).",
    "service": "Untuk membatalkan layanan, mohon sertakan nomornya ya Pak/Bu (contoh: LAY-20251201-001).",
}
CANCEL_ASK_TEXT = "Apakah Bapak/Ibu yakin ingin membatalkan {label} {case_id}?\nBalas YA untuk konfirmasi."
CANCEL_KEPT_TEXT = "Baik Pak/Bu, pembatalan saya batalkan. Ada yang bisa kami bantu lagi?"
CANCEL_UNCERTAIN_TEXT = (
    'Mohon konfirmasi ya Pak/Bu. Balas "YA" untuk melanjutkan pembatalan, atau "TIDAK" untuk membatalkan.'
)

SERVICE_NOT_FOUND_TEXT = (
    "Mohon maaf Pak/Bu, layanan tersebut belum kami temukan. Layanan apa yang Bapak/Ibu maksud?"
)
SERVICE_INACTIVE_TEXT = "Mohon maaf Pak/Bu, layanan {name} sedang tidak tersedia saat ini."
SERVICE_OFFLINE_TEXT = (
    "Layanan {name} diproses langsung di kantor. Silakan datang dengan membawa persyaratan di atas."
)
FORM_OFFER_TEXT = "Apakah Bapak/Ibu ingin kami kirim link formulirnya sekarang? Balas *iya* atau *tidak* ya."
FORM_OFFER_DECLINED_TEXT = "Baik Pak/Bu, siap. Kalau Bapak/Ibu mau proses nanti, kabari kami ya."
FORM_LINK_TEXT = "Baik Pak/Bu, silakan isi formulir {name} melalui link berikut:\n{url}"
ONLINE_GUIDANCE_TEXT = "Jika ingin mengajukan layanan ini secara online, silakan klik link berikut:\n{url}"
SERVICE_REQUEST_TEXT = "Baik Pak/Bu, permohonan {name} dapat diajukan secara online."

EDIT_NEEDS_NUMBER_TEXT = "Mohon sebutkan nomor layanan yang ingin diubah (contoh: LAY-20251201-001)."
EDIT_LINK_TEXT = (
    "Baik Pak/Bu, perubahan data layanan hanya dapat dilakukan melalui website.\n\n"
    "Silakan lakukan pembaruan melalui link berikut:\n{url}\n\nLink ini hanya berlaku satu kali."
)
EDIT_ERROR_TEXTS = {
    ErrorKind.DOWNSTREAM_NOT_FOUND: "Mohon maaf Pak/Bu, layanan *{case_id}* tidak ditemukan.",
    ErrorKind.DOWNSTREAM_NOT_OWNER: "Mohon maaf Pak/Bu, layanan *{case_id}* bukan milik Anda, jadi tidak bisa diubah.",
    ErrorKind.DOWNSTREAM_LOCKED: "Layanan *{case_id}* sudah selesai/dibatalkan/ditolak sehingga tidak bisa diubah.",
}

KNOWLEDGE_UNAVAILABLE_TEXT = (
    "Mohon maaf Pak/Bu, informasi tersebut belum tersedia di data kami. "
    "Silakan hubungi kantor pada jam kerja untuk keterangan lebih lanjut."
)

_LINK_REQUEST_RE = re.compile(r"\b(link|tautan|formulir|form|online)\b", re.IGNORECASE)
_ABORT_RE = re.compile(r"^\s*(batal|batalkan|cancel|gak\s+jadi|tidak\s+jadi|ga\s+jadi)\b", re.IGNORECASE)
_SERVICE_INQUIRY_RE = re.compile(
    r"\b(syarat|persyaratan|apa\s+saja|bagaimana\s+cara|gimana\s+cara|prosedur|berapa\s+lama|biaya|info)\b",
    re.IGNORECASE,
)
_SERVICE_ACTION_RE = re.compile(r"\b(mau|ingin|akan)\s+(buat|bikin|urus|ajukan|daftar)\b", re.IGNORECASE)

COMPLAINT_TYPES_CACHE_KEY = "all"

# Fast-classifier intents that mean the user left a pending address question.
_TOPIC_CHANGE_INTENTS = {
    "CHECK_STATUS", "CANCEL_COMPLAINT", "CANCEL_SERVICE_REQUEST", "UPDATE_COMPLAINT",
    "UPDATE_SERVICE_REQUEST", "HISTORY", "CREATE_COMPLAINT", "CREATE_SERVICE_REQUEST",
    "KNOWLEDGE_QUERY",
}


def is_service_inquiry(message: str) -> bool:
    """True when a "service request" message only asks about the service.

    Examples:
        >>> is_service_inquiry("apa saja syarat surat domisili?")
        True
        >>> is_service_inquiry("saya mau urus surat domisili")
        False
    """
    return bool(_SERVICE_INQUIRY_RE.search(message)) and not _SERVICE_ACTION_RE.search(message)


def _photo_count(foto_url: Optional[str]) -> int:
    if not foto_url:
        return 0
    if foto_url.startswith("["):
        return len(json.loads(foto_url))
    return 1


@dataclass
class TurnContext:
    """What a handler knows about the turn it is answering."""

    user_id: str
    channel: str
    message: str
    media_url: Optional[str] = None
    history: list[HistoryMessage] = field(default_factory=list)


@dataclass
class HandlerReply:
    text: str
    guidance: str = ""
    fields: dict[str, Any] = field(default_factory=dict)


class IntentHandlers:
    """Executes intents against the case service and the session state store."""

    def __init__(
        self,
        store: SessionStateStore,
        cases: CaseService,
        profiles: ProfileStore,
        confirmation: ConfirmationClassifier,
        services_config: Optional[ServiceConfig] = None,
    ) -> None:
        self.store = store
        self.cases = cases
        self.profiles = profiles
        self.confirmation = confirmation
        self.config = services_config or settings.services

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    async def complaint_types(self) -> list[ComplaintType]:
        cached = self.store.complaint_types.get(COMPLAINT_TYPES_CACHE_KEY)
        if cached is not None:
            return cached
        try:
            types = await self.cases.list_complaint_types()
        except DownstreamError as e:
            logger.warning("Complaint types unavailable: %s", e)
            return []
        self.store.complaint_types.set(COMPLAINT_TYPES_CACHE_KEY, types)
        return types

    async def complaint_type(self, slug: str) -> Optional[ComplaintType]:
        for complaint_type in await self.complaint_types():
            if complaint_type.slug == slug:
                return complaint_type
        return None

    async def resolve_service(self, slug: str = "", query: str = "") -> Optional[ServiceInfo]:
        """Service by slug, falling back to a cached search over ``query``."""
        if slug:
            service = await self.cases.get_service(slug)
            if service is not None:
                return service
        query = (query or slug).strip().lower()
        if not query:
            return None
        cached = self.store.service_search.get(query)
        if cached is None:
            cached = await self.cases.search_services(query)
            self.store.service_search.set(query, cached)
        return cached[0] if cached else None

    # ------------------------------------------------------------------ #
    # Complaint creation
    # ------------------------------------------------------------------ #

    def _photo_note(self, ctx: TurnContext) -> str:
        return photo_received_note(self.store.pending_photo_count(ctx.user_id))

    def _remember_photo(self, ctx: TurnContext) -> None:
        if ctx.media_url:
            count = self.store.add_pending_photo(ctx.user_id, ctx.media_url)
            logger.debug("Pending photo stored for %s (%d total)", ctx.user_id, count)

    async def handle_create_complaint(self, ctx: TurnContext, fields: ComplaintFields) -> HandlerReply:
        self._remember_photo(ctx)
        kategori = fields.kategori or find_matching_category(ctx.message, COMPLAINT_CATEGORY_PATTERNS) or ""
        if not kategori:
            return HandlerReply(MISSING_CATEGORY_TEXT)

        alamat = fields.alamat or extract_address_from_complaint(ctx.message)
        data = {
            "kategori": kategori,
            "alamat": alamat,
            "deskripsi": fields.deskripsi or ctx.message.strip(),
            "rt_rw": fields.rt_rw or extract_rt_rw(ctx.message) or extract_rt_rw(alamat),
        }
        complaint_type = await self.complaint_type(kategori)
        label = complaint_type.label if complaint_type else slug_to_label(kategori)
        require_address = complaint_type.require_address if complaint_type else True

        if require_address and not alamat:
            self.store.set_address_request(
                ctx.user_id,
                AwaitingAddress(category=kategori, description=data["deskripsi"], rt_rw=data["rt_rw"]),
            )
            urgent = bool(complaint_type and complaint_type.is_urgent)
            text = URGENT_ADDRESS_REQUEST_TEXT if urgent else ADDRESS_REQUEST_TEXT.format(label=label)
            return HandlerReply(text + self._photo_note(ctx), fields=data)

        if alamat and is_vague_address(alamat):
            return self._ask_address_confirmation(ctx, data, label)

        return await self.submit_complaint(ctx, data)

    def _ask_address_confirmation(self, ctx: TurnContext, data: dict[str, Any], label: str) -> HandlerReply:
        self.store.set_address_confirmation(
            ctx.user_id,
            AwaitingAddressConfirmation(
                address=data["alamat"],
                category=data["kategori"],
                description=data["deskripsi"],
                rt_rw=data["rt_rw"],
            ),
        )
        text = VAGUE_ADDRESS_TEXT.format(alamat=data["alamat"], label=label, photo_note=self._photo_note(ctx))
        return HandlerReply(text, fields=data)

    async def submit_complaint(self, ctx: TurnContext, data: dict[str, Any]) -> HandlerReply:
        """File a complete complaint, or park it until the reporter's contact is known."""
        name = data.get("reporter_name") or self.profiles.get_name(ctx.user_id) or ""
        phone = data.get("reporter_phone") or self.profiles.get_phone(ctx.user_id) or ""
        if not phone and ctx.channel == "whatsapp":
            phone = normalize_phone(ctx.user_id)

        if ctx.channel == "webchat" and (not name or not phone):
            waiting_for = "name" if not name else "phone"
            parked = {**data, "reporter_name": name, "reporter_phone": phone}
            self.store.clear_address_request(ctx.user_id)
            self.store.clear_address_confirmation(ctx.user_id)
            self.store.set_complaint_contact(ctx.user_id, AwaitingComplaintContact(parked, waiting_for))
            template = CONTACT_NAME_TEXT if waiting_for == "name" else CONTACT_PHONE_TEXT
            return HandlerReply(template.format(photo_note=self._photo_note(ctx)), fields=data)

        foto_url = self.store.consume_pending_photos(ctx.user_id, ctx.media_url)
        draft = ComplaintDraft(
            user_id=ctx.user_id,
            channel=ctx.channel,
            kategori=data["kategori"],
            deskripsi=data.get("deskripsi") or slug_to_label(data["kategori"]),
            alamat=data.get("alamat", ""),
            rt_rw=data.get("rt_rw", ""),
            reporter_name=name,
            reporter_phone=phone,
            foto_url=foto_url,
        )
        try:
            complaint_id = await self.cases.create_complaint(draft)
        except DownstreamError as e:
            logger.error("Complaint creation failed for %s: %s", ctx.user_id, e)
            return HandlerReply(DOWNSTREAM_UNAVAILABLE_TEXT, fields=data)

        self.store.clear_address_request(ctx.user_id)
        self.store.clear_address_confirmation(ctx.user_id)
        self.store.clear_complaint_contact(ctx.user_id)

        complaint_type = await self.complaint_type(data["kategori"])
        urgent = bool(complaint_type and complaint_type.is_urgent)
        status_line = "\nStatus laporan saat ini: OPEN." if urgent or draft.rt_rw else ""
        count = _photo_count(foto_url)
        text = COMPLAINT_CREATED_TEXT.format(
            complaint_id=complaint_id,
            status_line=status_line,
            photo_note=photo_attached_note(count),
            photo_reminder="" if count else PHOTO_REMINDER,
        )
        logger.info("Complaint %s filed for %s with %d photo(s)", complaint_id, ctx.user_id, count)
        return HandlerReply(text, fields={**data, "complaint_id": complaint_id})

    # ------------------------------------------------------------------ #
    # Pending complaint slots
    # ------------------------------------------------------------------ #

    async def handle_address_confirmation(
        self, ctx: TurnContext, slot: AwaitingAddressConfirmation
    ) -> HandlerReply:
        self._remember_photo(ctx)
        data = {
            "kategori": slot.category,
            "alamat": slot.address,
            "deskripsi": slot.description,
            "rt_rw": slot.rt_rw,
        }
        label = await self._category_label(slot.category)

        new_address = extract_address(ctx.message)
        if new_address:
            data["alamat"] = new_address
            data["rt_rw"] = slot.rt_rw or extract_rt_rw(new_address)
            if is_vague_address(new_address):
                return self._ask_address_confirmation(ctx, data, label)
            # The slot stays until the complaint is filed.
            return await self.submit_complaint(ctx, data)

        result = await self.confirmation.classify(ctx.message)
        if result.decision == ConfirmationDecision.CONFIRM:
            return await self.submit_complaint(ctx, data)
        if result.decision == ConfirmationDecision.REJECT:
            self.store.clear_address_confirmation(ctx.user_id)
            self.store.set_address_request(
                ctx.user_id,
                AwaitingAddress(category=slot.category, description=slot.description, rt_rw=slot.rt_rw),
            )
            return HandlerReply(ADDRESS_REJECTED_TEXT)
        text = VAGUE_ADDRESS_TEXT.format(alamat=slot.address, label=label, photo_note=self._photo_note(ctx))
        return HandlerReply(text)

    async def handle_address_request(self, ctx: TurnContext, slot: AwaitingAddress) -> Optional[HandlerReply]:
        """Consume an address reply; None when the user moved on to something else."""
        self._remember_photo(ctx)
        if _ABORT_RE.match(ctx.message):
            self.store.clear_address_request(ctx.user_id)
            return HandlerReply(COMPLAINT_ABORTED_TEXT)

        address = extract_address(ctx.message) or extract_address_from_complaint(ctx.message)
        if not address:
            if classify(ctx.message).intent in _TOPIC_CHANGE_INTENTS:
                logger.info("Address slot for %s dropped, message has another intent", ctx.user_id)
                self.store.clear_address_request(ctx.user_id)
                return None
            label = await self._category_label(slot.category)
            return HandlerReply(ADDRESS_REQUEST_TEXT.format(label=label) + self._photo_note(ctx))

        data = {
            "kategori": slot.category,
            "alamat": address,
            "deskripsi": slot.description,
            "rt_rw": slot.rt_rw or extract_rt_rw(address),
        }
        if is_vague_address(address):
            self.store.clear_address_request(ctx.user_id)
            return self._ask_address_confirmation(ctx, data, await self._category_label(slot.category))
        return await self.submit_complaint(ctx, data)

    async def handle_complaint_contact(self, ctx: TurnContext, slot: AwaitingComplaintContact) -> HandlerReply:
        self._remember_photo(ctx)
        data = dict(slot.data)
        if slot.waiting_for == "name":
            name = extract_name(ctx.message)
            if not name:
                return HandlerReply(CONTACT_NAME_TEXT.format(photo_note=""))
            self.profiles.save(ctx.user_id, name=name)
            data["reporter_name"] = name
        else:
            raw = extract_phone(normalize_phone(ctx.message)) or ""
            if not raw:
                return HandlerReply(CONTACT_PHONE_TEXT.format(photo_note=""))
            self.profiles.save(ctx.user_id, phone=raw)
            data["reporter_phone"] = raw

        self.store.clear_complaint_contact(ctx.user_id)
        return await self.submit_complaint(ctx, data)

    async def _category_label(self, slug: str) -> str:
        complaint_type = await self.complaint_type(slug)
        return complaint_type.label if complaint_type else slug_to_label(slug)

    # ------------------------------------------------------------------ #
    # Existing complaints and service requests
    # ------------------------------------------------------------------ #

    async def handle_update_complaint(self, ctx: TurnContext, fields: ComplaintRefFields) -> HandlerReply:
        complaint_id = fields.complaint_id.upper()
        if not complaint_id:
            return HandlerReply(UPDATE_NEEDS_ID_TEXT)
        if not (fields.alamat or fields.deskripsi or fields.rt_rw):
            return HandlerReply(UPDATE_NEEDS_FIELDS_TEXT)

        deskripsi = f"[Update] {fields.deskripsi}" if fields.deskripsi else None
        try:
            await self.cases.update_complaint(
                ctx.user_id,
                complaint_id,
                alamat=fields.alamat or None,
                deskripsi=deskripsi,
                rt_rw=fields.rt_rw or None,
            )
        except DownstreamError as e:
            template = UPDATE_ERROR_TEXTS.get(e.kind)
            if template is None:
                logger.error("Complaint update failed for %s: %s", complaint_id, e)
                return HandlerReply(DOWNSTREAM_UNAVAILABLE_TEXT)
            return HandlerReply(template.format(case_id=complaint_id))
        return HandlerReply(UPDATE_DONE_TEXT.format(complaint_id=complaint_id))

    def request_cancel(
        self, ctx: TurnContext, case_type: CaseType, case_id: str, reason: str = ""
    ) -> HandlerReply:
        """Ask for confirmation before cancelling; nothing is cancelled yet."""
        if not case_id:
            return HandlerReply(CANCEL_NEEDS_ID_TEXT[case_type])
        case_id = case_id.upper()
        self.store.set_cancel_confirmation(
            ctx.user_id,
            AwaitingCancelConfirmation(target_type=case_type, target_id=case_id, reason=reason or None),
        )
        label = "laporan" if case_type == "complaint" else "layanan"
        return HandlerReply(CANCEL_ASK_TEXT.format(label=label, case_id=case_id))

    async def handle_cancel_confirmation(
        self, ctx: TurnContext, slot: AwaitingCancelConfirmation
    ) -> HandlerReply:
        result = await self.confirmation.classify(ctx.message)
        if result.decision == ConfirmationDecision.UNCERTAIN:
            return HandlerReply(CANCEL_UNCERTAIN_TEXT)

        self.store.clear_cancel_confirmation(ctx.user_id)
        if result.decision == ConfirmationDecision.REJECT:
            return HandlerReply(CANCEL_KEPT_TEXT)

        try:
            cancelled = await self.cases.cancel(ctx.user_id, slot.target_type, slot.target_id, slot.reason)
        except DownstreamError as e:
            logger.warning("Cancel of %s failed: %s", slot.target_id, e.kind.value)
            return HandlerReply(format_cancel_error(slot.target_type, slot.target_id, e.kind))
        return HandlerReply(format_cancel_success(cancelled.case_type, cancelled.case_id, cancelled.note))

    async def handle_check_status(
        self, ctx: TurnContext, complaint_id: str = "", request_number: str = ""
    ) -> HandlerReply:
        if not complaint_id and not request_number:
            return HandlerReply(fallback_for_intent("CHECK_STATUS"))
        case_type: CaseType = "complaint" if complaint_id else "service"
        case_id = (complaint_id or request_number).upper()
        try:
            case = await self.cases.get_status(ctx.user_id, case_type, case_id)
        except DownstreamError as e:
            return HandlerReply(format_status_error(case_type, case_id, e.kind))
        return HandlerReply(format_status(case), fields={"status": case.status})

    async def handle_history(self, ctx: TurnContext) -> HandlerReply:
        try:
            items = await self.cases.get_history(ctx.user_id, ctx.channel)
        except DownstreamError as e:
            logger.error("History lookup failed for %s: %s", ctx.user_id, e)
            return HandlerReply(DOWNSTREAM_UNAVAILABLE_TEXT)
        return HandlerReply(format_history(items), fields={"total": len(items)})

    async def handle_update_service_request(self, ctx: TurnContext, request_number: str) -> HandlerReply:
        request_number = request_number.upper()
        if not request_number:
            return HandlerReply(EDIT_NEEDS_NUMBER_TEXT)
        try:
            token = await self.cases.get_edit_token(ctx.user_id, request_number)
        except DownstreamError as e:
            template = EDIT_ERROR_TEXTS.get(e.kind)
            if template is None:
                logger.error("Edit token for %s failed: %s", request_number, e)
                return HandlerReply(DOWNSTREAM_UNAVAILABLE_TEXT)
            return HandlerReply(template.format(case_id=request_number))
        url = build_edit_form_url(
            self.config.public_form_base_url, request_number, token, ctx.user_id, ctx.channel
        )
        return HandlerReply(EDIT_LINK_TEXT.format(url=url))

    # ------------------------------------------------------------------ #
    # Services
    # ------------------------------------------------------------------ #

    def _form_url(self, ctx: TurnContext, service: ServiceInfo) -> str:
        return build_service_form_url(self.config.public_form_base_url, service.slug, ctx.user_id, ctx.channel)

    async def handle_service_info(self, ctx: TurnContext, fields: ServiceFields, reply_text: str = "") -> HandlerReply:
        try:
            service = await self.resolve_service(fields.service_slug, fields.service_name or ctx.message)
        except DownstreamError as e:
            logger.error("Service lookup failed: %s", e)
            return HandlerReply(DOWNSTREAM_UNAVAILABLE_TEXT)
        if service is None:
            return HandlerReply(reply_text or SERVICE_NOT_FOUND_TEXT)
        if not service.is_active:
            return HandlerReply(SERVICE_INACTIVE_TEXT.format(name=service.name))

        lines = [f"Persyaratan {service.name}:"]
        for i, requirement in enumerate(sorted(service.requirements, key=lambda r: r.order_index), 1):
            optional = "" if requirement.is_required else " (opsional)"
            lines.append(f"{i}. {requirement.label}{optional}")
        text = "\n".join(lines)

        if service.is_online:
            self.store.set_service_form_offer(ctx.user_id, AwaitingServiceFormOffer(service_slug=service.slug))
            text += "\n\n" + FORM_OFFER_TEXT
        else:
            text += "\n\n" + SERVICE_OFFLINE_TEXT.format(name=service.name)
        return HandlerReply(text, fields={"service_slug": service.slug})

    async def handle_create_service_request(self, ctx: TurnContext, fields: ServiceFields) -> HandlerReply:
        try:
            service = await self.resolve_service(fields.service_slug, fields.service_name or ctx.message)
        except DownstreamError as e:
            logger.error("Service lookup failed: %s", e)
            return HandlerReply(DOWNSTREAM_UNAVAILABLE_TEXT)
        if service is None:
            return HandlerReply(missing_field_prompt("service_slug"))
        if not service.is_active:
            return HandlerReply(SERVICE_INACTIVE_TEXT.format(name=service.name))
        if not service.is_online:
            return HandlerReply(SERVICE_OFFLINE_TEXT.format(name=service.name))

        url = self._form_url(ctx, service)
        return HandlerReply(
            SERVICE_REQUEST_TEXT.format(name=service.name),
            guidance=ONLINE_GUIDANCE_TEXT.format(url=url),
            fields={"service_slug": service.slug},
        )

    async def handle_service_form_offer(
        self, ctx: TurnContext, slot: AwaitingServiceFormOffer
    ) -> HandlerReply:
        if _LINK_REQUEST_RE.search(ctx.message):
            decision = ConfirmationDecision.CONFIRM
        else:
            decision = (await self.confirmation.classify(ctx.message)).decision

        if decision == ConfirmationDecision.UNCERTAIN:
            return HandlerReply(FORM_OFFER_TEXT)
        self.store.clear_service_form_offer(ctx.user_id)
        if decision == ConfirmationDecision.REJECT:
            return HandlerReply(FORM_OFFER_DECLINED_TEXT)

        try:
            service = await self.resolve_service(slot.service_slug)
        except DownstreamError as e:
            logger.error("Service lookup failed: %s", e)
            return HandlerReply(DOWNSTREAM_UNAVAILABLE_TEXT)
        if service is None:
            return HandlerReply(SERVICE_NOT_FOUND_TEXT)
        return HandlerReply(
            FORM_LINK_TEXT.format(name=service.name, url=self._form_url(ctx, service)),
            fields={"service_slug": service.slug},
        )

    # ------------------------------------------------------------------ #
    # Quick replies
    # ------------------------------------------------------------------ #

    @staticmethod
    def quick_reply(kind: str) -> HandlerReply:
        """Template reply for a fast-classified yes, no or thanks."""
        texts = {
            "CONFIRMATION": CONFIRMATION_RESPONSES,
            "REJECTION": REJECTION_RESPONSES,
            "THANKS": THANKS_RESPONSES,
        }
        return HandlerReply(texts.get(kind, [fallback_for_intent(kind)])[0])

    @staticmethod
    def knowledge_reply(reply_text: str, has_knowledge: bool) -> HandlerReply:
        if reply_text.strip():
            return HandlerReply(reply_text)
        if has_knowledge:
            return HandlerReply(fallback_for_intent("KNOWLEDGE_QUERY"))
        return HandlerReply(KNOWLEDGE_UNAVAILABLE_TEXT)
