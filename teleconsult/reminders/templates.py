from typing import Optional
from sqlalchemy import select
from sqlalchemy.orm import Session

from teleconsult.models.whatsapp_template import WhatsappTemplate
from .schemas import ProcessedTemplate


class TemplateCatalog:
    """Read access to the channel template catalog."""

    def __init__(self, db: Session):
        self.db = db

    def get_processed_template(self, key: str) -> Optional[ProcessedTemplate]:
        template = self.db.execute(
            select(WhatsappTemplate).where(WhatsappTemplate.key == key)
        ).scalar_one_or_none()
        if template is None:
            return None
        return ProcessedTemplate(
            key=template.key,
            sid=template.sid,
            body=template.body,
            variables=dict(template.variables or {}),
        )


def render_body(body: Optional[str], variables: dict) -> str:
    """Substitute WhatsApp-style {{1}}, {{2}} placeholders with variable values."""
    rendered = body or ""
    for name, value in variables.items():
        rendered = rendered.replace("{{" + str(name) + "}}", str(value))
    return rendered
