from typing import Optional

from app.infra.crm.client import CrmClient
from app.infra.crm.contacts import extract_record_id


class CrmOpportunitiesRepo:
    def __init__(self, client: CrmClient):
        self.client = client

    async def create(
        self,
        *,
        contact_id: str,
        pipeline_id: str,
        stage_id: str,
        name: str,
        monetary_value: float,
    ) -> Optional[str]:
        body = {
            "name": name,
            "monetaryValue": monetary_value,
            "status": "open",
            "pipelineId": pipeline_id,
            "stageId": stage_id,
            "contactId": contact_id,
            "locationId": self.client.location_id,
        }
        data = await self.client.post_json("opportunities/", body)
        return extract_record_id(data, wrapper="opportunity")
