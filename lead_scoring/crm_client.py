"""
CRM contact client.

Pushes qualified leads to a GoHighLevel-compatible contacts API: look the
contact up by email, update it when found, create it otherwise.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from database.models import Lead

from .form_config import FormConfig
from .progress_store import lead_answers, lead_contact

logger = logging.getLogger(__name__)


class CrmError(Exception):
    """Raised when the CRM rejects a request or cannot be reached."""


@dataclass
class CrmContact:
    """Contact payload in the CRM's vocabulary."""
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    source: str = "website"
    tags: List[str] = field(default_factory=list)
    custom_fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_lead(cls, lead: Lead, config: FormConfig) -> "CrmContact":
        """Build a contact from a lead, mapping answers through ``crmFieldMapping``."""
        answers = lead_answers(lead)
        contact = lead_contact(lead, config)
        parts = contact.name.split()
        custom_fields: Dict[str, str] = {}
        for question in config.questions:
            if question.crm_field_mapping and answers.get(question.id):
                custom_fields[question.crm_field_mapping] = answers[question.id]
            cond = question.conditional_field
            if cond is not None and cond.crm_field_mapping and answers.get(cond.id):
                custom_fields[cond.crm_field_mapping] = answers[cond.id]

        return cls(
            email=contact.email or None,
            first_name=parts[0] if parts else "",
            last_name=" ".join(parts[1:]),
            phone=contact.phone or None,
            source=f"{lead.source or 'form'}-lead",
            tags=[f"lead-{(lead.classification or 'COLD').lower()}"],
            custom_fields=custom_fields,
        )

    def to_payload(self, location_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "locationId": location_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "source": self.source,
            "tags": self.tags,
            "customFields": [
                {"id": field_id, "value": value}
                for field_id, value in self.custom_fields.items()
            ],
        }
        if self.email:
            payload["email"] = self.email
        if self.phone:
            payload["phone"] = self.phone
        return payload


class CrmClient:
    """
    Async client for the contacts API.

    Args:
        base_url: API root, e.g. https://services.leadconnectorhq.com
        api_key: Bearer token
        location_id: Sub-account the contacts belong to
        api_version: Value of the ``Version`` header
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        location_id: str,
        api_version: str = "2021-04-15",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.location_id = location_id
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Version": self.api_version,
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )

    async def find_contact_by_email(self, client: httpx.AsyncClient, email: str) -> Optional[str]:
        response = await client.get(
            "/contacts/",
            params={"locationId": self.location_id, "query": email},
        )
        if response.status_code != 200:
            raise CrmError(f"Contact lookup failed: {response.status_code} {response.text[:200]}")
        for contact in response.json().get("contacts") or []:
            if (contact.get("email") or "").lower() == email.lower():
                return contact.get("id")
        return None

    async def upsert_contact(self, contact: CrmContact) -> str:
        """
        Create or update a contact and return its id.

        Raises:
            CrmError: on any transport error or non-success response
        """
        payload = contact.to_payload(self.location_id)
        try:
            async with self._client() as client:
                contact_id = None
                if contact.email:
                    contact_id = await self.find_contact_by_email(client, contact.email)

                if contact_id:
                    update = {k: v for k, v in payload.items() if k != "locationId"}
                    response = await client.put(f"/contacts/{contact_id}", json=update)
                else:
                    response = await client.post("/contacts/", json=payload)

                if response.status_code not in (200, 201):
                    raise CrmError(
                        f"Contact upsert failed: {response.status_code} {response.text[:200]}"
                    )
                data = response.json()
        except httpx.HTTPError as e:
            raise CrmError(f"CRM request error: {e}") from e

        contact_id = (data.get("contact") or {}).get("id") or contact_id
        if not contact_id:
            raise CrmError("CRM response did not include a contact id")

        logger.info(f"CRM contact upserted: {contact_id}")
        return str(contact_id)
