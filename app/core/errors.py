from typing import Optional

BODY_PREVIEW_CHARS = 400


def truncate_body(text: Optional[str], limit: int = BODY_PREVIEW_CHARS) -> str:
    body = text or ""
    if len(body) > limit:
        return body[:limit] + "...(truncated)"
    return body


class WebhookSignatureError(Exception):
    """The inbound webhook could not be authenticated."""


class IdentityUnresolvable(Exception):
    """No email could be obtained for the billing event's subject."""


class CrmRequestError(RuntimeError):
    def __init__(self, method: str, url: str, status_code: Optional[int], body: str = ""):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = truncate_body(body)
        super().__init__(f"CRM {method} {url} failed: status={status_code} body={self.body}")


class StageNotFoundError(LookupError):
    def __init__(self, pipeline_id: str, stage_name: str):
        self.pipeline_id = pipeline_id
        self.stage_name = stage_name
        super().__init__(f'Could not resolve stageId for "{stage_name}" in pipeline {pipeline_id}')
