"""
Offline console demo: runs full citizen conversations without any API keys.

The real orchestrator, guardrails, session state and handlers are used;
only the collaborators are swapped out. The generative model is replaced by
a small rule-based provider that answers with the same JSON the real model
is asked for, and the case, knowledge and channel services are the
in-memory stand-ins from ``src/tools``. No network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario complaint
    python console_demo.py --scenario info
    python console_demo.py --scenario cancel
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Optional

from src.config import settings
from src.conversation.fast_classifier import classify, extract_ids
from src.conversation.handlers import is_service_inquiry
from src.conversation.orchestrator import build_orchestrator
from src.llm.credentials import CredentialDescriptor, CredentialPool
from src.llm.provider import ProviderResponse
from src.prompts.system_prompts import KNOWLEDGE_HEADER, LAST_MESSAGE_HEADER
from src.schemas.conversation_schema import Channel, Role, TurnInput
from src.tools.case_store import InMemoryCaseService
from src.tools.knowledge_base import InMemoryKnowledgeService
from src.tools.message_log import InMemoryChannelService
from src.tools.profile_store import ProfileStore
from src.tools.service_catalog import ServiceCatalog

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_USER_ID = "6281234567890"


class ScriptedModelProvider:
    """Rule-based stand-in for the generative model.

    Reads the citizen's last message out of the prompt and answers with a
    structured reply, so the whole model path (parsing, routing, knowledge
    second pass, anti-hallucination gate) runs offline.
    """

    def __init__(self, catalog: Optional[ServiceCatalog] = None) -> None:
        self.catalog = catalog or ServiceCatalog()
        self.calls = 0

    async def generate(
        self,
        api_key: str,
        model: str,
        prompt: str,
        response_schema: Optional[dict[str, Any]] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 2048,
    ) -> ProviderResponse:
        self.calls += 1
        if prompt.startswith("Anda adalah classifier konfirmasi"):
            payload: dict[str, Any] = {"decision": "UNCERTAIN", "confidence": 0.3, "reason": "scripted"}
        else:
            payload = self._reply_for(prompt)
        text = json.dumps(payload, ensure_ascii=False)
        return ProviderResponse(text=text, input_tokens=len(prompt) // 4, output_tokens=len(text) // 4)

    @staticmethod
    def _last_message(prompt: str) -> str:
        _, _, tail = prompt.rpartition(LAST_MESSAGE_HEADER + "\n")
        return tail.split("\n\nKOREKSI WAJIB", 1)[0].strip()

    @staticmethod
    def _knowledge(prompt: str) -> str:
        if KNOWLEDGE_HEADER not in prompt:
            return ""
        block = prompt.split(KNOWLEDGE_HEADER, 1)[1].split("[CONFIDENCE:", 1)[0]
        lines = [line.strip() for line in block.strip().splitlines() if line.strip()]
        return " ".join(lines[:2])

    def _reply_for(self, prompt: str) -> dict[str, Any]:
        message = self._last_message(prompt)
        fast = classify(message)
        fields = dict(fast.extracted_fields)
        service = self.catalog.match(message)

        if fast.intent == "CREATE_COMPLAINT":
            return {
                "intent": "CREATE_COMPLAINT",
                "fields": {"kategori": fields.get("kategori", ""), "deskripsi": message},
                "reply_text": "Baik, laporan Bapak/Ibu kami catat.",
            }
        if fast.intent in ("UPDATE_COMPLAINT", "UPDATE_SERVICE_REQUEST"):
            return {
                "intent": fast.intent,
                "fields": {**extract_ids(message), "deskripsi": message},
                "reply_text": "Baik, kami proses perubahannya.",
            }
        if service is not None:
            intent = "SERVICE_INFO" if is_service_inquiry(message) else "CREATE_SERVICE_REQUEST"
            return {
                "intent": intent,
                "fields": {"service_slug": service.slug, "service_name": service.name},
                "reply_text": f"Berikut informasi {service.name}.",
            }
        if fast.intent == "KNOWLEDGE_QUERY":
            knowledge = self._knowledge(prompt)
            if knowledge:
                return {
                    "intent": "KNOWLEDGE_QUERY",
                    "fields": {"knowledge_category": fields.get("knowledge_category", "")},
                    "reply_text": f"Berikut informasinya Pak/Bu: {knowledge}",
                }
            return {
                "intent": "KNOWLEDGE_QUERY",
                "fields": {"knowledge_category": fields.get("knowledge_category", "")},
                "reply_text": "Sebentar Pak/Bu, saya carikan informasinya.",
                "needs_knowledge": True,
            }
        return {
            "intent": "QUESTION",
            "fields": {},
            "reply_text": (
                "Saya bisa membantu laporan warga, cek status, dan informasi layanan surat. "
                "Ada yang bisa kami bantu?"
            ),
        }


class ConsoleSession:
    """Drives the orchestrator from the terminal."""

    # Pre-scripted scenarios for --scenario flag. "{last_case}" is replaced by
    # the tracking code of the most recent complaint.
    SCENARIOS: dict[str, list[str]] = {
        "complaint": [
            "halo",
            "nama saya Budi",
            "lampu jalan mati di depan rumah",
            "jalan merdeka no 5 rt 02 rw 03",
            "cek status {last_case}",
            "terima kasih",
        ],
        "info": [
            "selamat pagi",
            "nama saya Sari",
            "jam buka kantor kelurahan kapan?",
            "syarat surat domisili apa saja?",
            "iya kirim link formulirnya",
            "makasih",
        ],
        "cancel": [
            "nama saya Andi",
            "lapor pohon tumbang di jalan mawar no 3",
            "batalkan laporan {last_case}",
            "ya",
            "riwayat laporan saya",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self, user_id: str = DEMO_USER_ID) -> None:
        self.user_id = user_id
        self.cases = InMemoryCaseService()
        self.channel = InMemoryChannelService()
        self.provider = ScriptedModelProvider(self.cases.catalog)
        pool = CredentialPool(
            [CredentialDescriptor(key_id="demo", name="demo", api_key="offline", tier="env")]
        )
        self.orchestrator = build_orchestrator(
            provider=self.provider,
            pool=pool,
            cases=self.cases,
            knowledge=InMemoryKnowledgeService(),
            channel=self.channel,
            profiles=ProfileStore(),
        )
        self.last_case: Optional[str] = None

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.assistant_name}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  GOVCONNECT ASSISTANT - {title}{RESET}")
        print(f"{BOLD}  Wilayah: {settings.village_name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        for step in steps:
            text = step.replace("{last_case}", self.last_case or "LAP-00000000-000")
            print(f"\n{BLUE}[Warga] {RESET}{text}")
            await self._process_input(text)

        await self._finish(f"Scenario '{scenario}' complete.")

    async def run(self) -> None:
        self._banner("Console Demo")
        print(f"{BOLD}  Type 'quit' to exit{RESET}")

        while True:
            user_input = input(f"\n{BLUE}[Warga] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                break
            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.agent_say("Pesannya cukup panjang, Pak/Bu. Boleh diringkas?")
                continue
            await self._process_input(user_input)

        await self._finish("Conversation complete.")

    async def _process_input(self, text: str) -> None:
        self.channel.record(self.user_id, Role.USER, text)
        result = await self.orchestrator.process(
            TurnInput(user_id=self.user_id, channel=Channel.WHATSAPP, message=text)
        )

        if not result.response_text:
            self.system_log(f"Message dropped ({result.error})")
            return
        self.agent_say(result.response_text)
        if result.guidance_text:
            self.agent_say(result.guidance_text)
        self.channel.record(self.user_id, Role.ASSISTANT, result.response_text)

        complaint_id = result.fields.get("complaint_id")
        if complaint_id:
            self.last_case = complaint_id
        self.system_log(
            f"intent={result.intent} path={result.metadata.get('path', '-')} "
            f"success={result.success} ({result.metadata.get('processing_time_ms', 0)}ms)"
        )

    async def _finish(self, title: str) -> None:
        await self.orchestrator.close(max_wait=1.0)
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {title}{RESET}")
        print(f"{DIM}  Model calls: {self.provider.calls}{RESET}")
        print(f"{DIM}  Case service calls: {', '.join(self.cases.calls) or '-'}{RESET}")
        print(f"{DIM}  Model stats: {self.orchestrator.planner.tracker.snapshot()}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="GovConnect assistant console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        help="auto-play a scripted conversation",
    )
    args = parser.parse_args(argv)

    session = ConsoleSession()
    try:
        if args.scenario:
            asyncio.run(session.run_scenario(args.scenario))
        else:
            asyncio.run(session.run())
    except (KeyboardInterrupt, EOFError):
        print(f"\n{DIM}Session ended.{RESET}")
        sys.exit(0)


if __name__ == "__main__":
    main()
