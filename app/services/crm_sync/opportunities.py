import logging
from typing import Optional

from app.core.config import Settings
from app.infra.crm.opportunities import CrmOpportunitiesRepo
from app.infra.crm.stages import StageIdResolver

logger = logging.getLogger("uvicorn.error")


class TrialOpportunityCreator:
    def __init__(
        self,
        repo: CrmOpportunitiesRepo,
        resolver: StageIdResolver,
        *,
        pipeline_id: str,
        stage_name: str = "Trial",
        stage_id: str = "",
        name: str = "FlavorCoach – $10/mo",
        monetary_value: float = 10.0,
    ):
        self.repo = repo
        self.resolver = resolver
        self.pipeline_id = pipeline_id
        self.stage_name = stage_name
        self.stage_id = stage_id
        self.name = name
        self.monetary_value = monetary_value

    @classmethod
    def from_settings(
        cls, settings: Settings, repo: CrmOpportunitiesRepo, resolver: StageIdResolver
    ) -> "TrialOpportunityCreator":
        return cls(
            repo,
            resolver,
            pipeline_id=settings.crm_pipeline_id,
            stage_name=settings.crm_trial_stage_name,
            stage_id=settings.crm_trial_stage_id,
            name=settings.crm_opportunity_name,
            monetary_value=settings.crm_opportunity_value,
        )

    async def _stage_id(self) -> Optional[str]:
        if self.stage_id:
            return self.stage_id
        try:
            return await self.resolver.resolve(self.pipeline_id, self.stage_name)
        except Exception as e:
            logger.warning("[crm] stage resolve failed: %s", e)
            return None

    async def create_for(self, contact_id: Optional[str]) -> Optional[str]:
        """Open a trial opportunity for the contact. Never raises."""
        stage_id = await self._stage_id() if self.pipeline_id else None
        if not (contact_id and self.pipeline_id and stage_id):
            logger.warning(
                "[crm] opportunity create skipped: contact_id=%s pipeline_id=%s stage_id=%s",
                contact_id,
                self.pipeline_id,
                stage_id,
            )
            return None

        try:
            opportunity_id = await self.repo.create(
                contact_id=contact_id,
                pipeline_id=self.pipeline_id,
                stage_id=stage_id,
                name=self.name,
                monetary_value=self.monetary_value,
            )
        except Exception as e:
            logger.warning("[crm] opportunity create failed: contact_id=%s err=%s", contact_id, e)
            return None

        logger.info("[crm] opportunity created: id=%s contact_id=%s stage_id=%s", opportunity_id, contact_id, stage_id)
        return opportunity_id
