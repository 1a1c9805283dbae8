"""
ElevenLabs Conversational AI client - agent creation, phone number
assignment and outbound calls
"""
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
import httpx
import logging

logger = logging.getLogger(__name__)

AGENT_DASHBOARD_URL = "https://elevenlabs.io/app/conversational-ai/{agent_id}"


class VoiceAgentError(Exception):
    """Upstream or configuration failure carrying the HTTP status to return"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def normalize_phone_number(phone_number: str, default_country_code: str = "+1") -> str:
    """
    Bring a destination number into E.164-like form

    Numbers already starting with '+' are only trimmed. Anything else is
    stripped to its digits and given the default country code, so
    international numbers entered without '+' end up wrong.
    """
    formatted = phone_number.strip()
    if not formatted.startswith('+'):
        formatted = default_country_code + re.sub(r"\D", "", formatted)
    return formatted


class VoiceAgentService:
    def __init__(self, api_key: Optional[str], base_url: str = "https://api.elevenlabs.io",
                 agent_llm: str = "gemini-2.5-flash", timeout: float = 30.0,
                 default_country_code: str = "+1",
                 client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.agent_llm = agent_llm
        self.timeout = timeout
        self.default_country_code = default_country_code
        self.client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @asynccontextmanager
    async def _session(self):
        """Use the injected client if there is one, otherwise a short-lived one"""
        if self.client is not None:
            yield self.client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers = {"xi-api-key": self.api_key or ""}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def build_agent_payload(self, script: str, study_name: Optional[str]) -> Dict[str, Any]:
        agent_name = study_name or "Clinical Trial"
        trial = f"the {study_name} clinical trial" if study_name else "this clinical trial"
        return {
            "name": f"{agent_name} Pre-Screening Agent",
            "conversation_config": {
                "agent": {
                    "prompt": {
                        "prompt": script,
                        "llm": self.agent_llm,
                    },
                    "first_message": (
                        f"Hello! Thank you for your interest in {trial}. "
                        "I'm here to conduct a brief pre-screening to see if you might be eligible. "
                        "This will only take a few minutes. Do I have your permission to ask you "
                        "some questions about your health?"
                    ),
                    "language": "en",
                },
            },
        }

    async def list_phone_numbers(self, client: httpx.AsyncClient) -> httpx.Response:
        return await client.get(
            f"{self.base_url}/v1/convai/phone-numbers",
            headers=self._headers(),
        )

    async def assign_agent_to_first_number(self, client: httpx.AsyncClient, agent_id: str) -> bool:
        """Point the account's first phone number at the agent; failures are only logged"""
        try:
            response = await self.list_phone_numbers(client)
            if response.status_code >= 400:
                logger.error(f"Failed to list phone numbers: {response.text}")
                return False

            phone_numbers = response.json()
            if not phone_numbers:
                logger.warning("No phone numbers configured, agent left unassigned")
                return False

            phone_number_id = phone_numbers[0]["phone_number_id"]
            logger.info(f"Assigning agent {agent_id} to phone number {phone_number_id}")

            assign_response = await client.patch(
                f"{self.base_url}/v1/convai/phone-numbers/{phone_number_id}",
                headers=self._headers(json_body=True),
                json={"assigned_agent_id": agent_id},
            )
            if assign_response.status_code >= 400:
                logger.error(f"Failed to assign agent to phone number: {assign_response.text}")
                return False

            logger.info("Agent assigned to phone number successfully")
            return True

        except Exception as e:
            logger.error(f"Phone number assignment failed: {str(e)}")
            return False

    async def create_agent(self, script: str, study_name: Optional[str]) -> Dict[str, str]:
        """
        Create a pre-screening agent and bind it to the first phone number

        Args:
            script: System prompt for the agent
            study_name: Used in the agent name and opening line

        Returns:
            Dict with agent_id and agent_url
        """
        if not self.is_configured:
            raise VoiceAgentError(
                500,
                "ElevenLabs API key not configured. Please add ELEVENLABS_API_KEY to your .env file",
            )

        logger.info(f"Creating ElevenLabs voice agent (script length: {len(script)})")

        async with self._session() as client:
            response = await client.post(
                f"{self.base_url}/v1/convai/agents/create",
                headers=self._headers(json_body=True),
                json=self.build_agent_payload(script, study_name),
            )

            if response.status_code >= 400:
                logger.error(f"ElevenLabs API error: {response.text}")
                raise VoiceAgentError(response.status_code, f"Failed to create agent: {response.text}")

            agent_id = response.json()["agent_id"]
            logger.info(f"Voice agent created: {agent_id}")

            await self.assign_agent_to_first_number(client, agent_id)

        return {
            "agent_id": agent_id,
            "agent_url": AGENT_DASHBOARD_URL.format(agent_id=agent_id),
        }

    async def initiate_call(self, phone_number: str, agent_id: str) -> Dict[str, Optional[str]]:
        """Place an outbound call from the account's first phone number"""
        if not self.is_configured:
            raise VoiceAgentError(500, "ElevenLabs API key not configured")

        async with self._session() as client:
            logger.info("Fetching phone numbers from ElevenLabs...")
            numbers_response = await self.list_phone_numbers(client)

            if numbers_response.status_code >= 400:
                logger.error(f"Failed to fetch phone numbers: {numbers_response.text}")
                raise VoiceAgentError(
                    500,
                    "Failed to fetch phone numbers from ElevenLabs. Make sure you have connected "
                    "a Twilio number in your ElevenLabs dashboard.",
                )

            phone_numbers: List[Dict[str, Any]] = numbers_response.json()
            if not phone_numbers:
                raise VoiceAgentError(
                    400,
                    "No phone numbers found in ElevenLabs. Please connect your Twilio number "
                    "in the ElevenLabs dashboard first.",
                )

            phone_number_id = phone_numbers[0]["phone_number_id"]
            to_number = normalize_phone_number(phone_number, self.default_country_code)
            logger.info(f"Initiating call to {to_number} using phone number {phone_number_id}")

            response = await client.post(
                f"{self.base_url}/v1/convai/twilio/outbound-call",
                headers=self._headers(json_body=True),
                json={
                    "agent_id": agent_id,
                    "agent_phone_number_id": phone_number_id,
                    "to_number": to_number,
                },
            )

            if response.status_code >= 400:
                logger.error(f"ElevenLabs API error: {response.text}")
                raise VoiceAgentError(response.status_code, f"Failed to initiate call: {response.text}")

            data = response.json()

        logger.info(f"Call initiated: {data}")
        return {
            "conversation_id": data.get("conversation_id"),
            "call_sid": data.get("callSid"),
            "message": data.get("message") or f"Call initiated to {to_number}",
        }
