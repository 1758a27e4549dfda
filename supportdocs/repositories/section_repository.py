"""Section repository."""

import re
from typing import List

from ..models import Section
from ..models.statuses import RunStatus, SectionStatus, SectionType
from ..exceptions import SectionNotFoundError
from .base import BaseRepository

# "Jobs to be done" templates offered to every new project.
TEMPLATE_SECTIONS = [
    {"slug": "getting-started", "name": "Getting Started",
     "description": "First steps for new users: setup, onboarding and a first success."},
    {"slug": "daily-tasks", "name": "Daily Tasks",
     "description": "The everyday workflows users come back to repeatedly."},
    {"slug": "advanced-usage", "name": "Advanced Usage",
     "description": "Power-user features, integrations and customisation."},
    {"slug": "troubleshooting", "name": "Troubleshooting",
     "description": "Common problems, error messages and how to resolve them."},
]


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "section"


class SectionRepository(BaseRepository[Section]):
    model_class = Section
    not_found_error = SectionNotFoundError

    def create(self, project_id: str, name: str, **fields) -> Section:
        fields.setdefault("slug", slugify(name))
        if "position" not in fields:
            fields["position"] = self.db.query(Section).filter(Section.project_id == project_id).count()
        section = Section(project_id=project_id, name=name, **fields)
        self.db.add(section)
        self.db.commit()
        self.db.refresh(section)
        return section

    def list_for_project(self, project_id: str) -> List[Section]:
        return (
            self.db.query(Section)
            .filter(Section.project_id == project_id)
            .order_by(Section.position.asc())
            .all()
        )

    def accepted_for_project(self, project_id: str) -> List[Section]:
        return (
            self.db.query(Section)
            .filter(Section.project_id == project_id, Section.status == SectionStatus.ACCEPTED)
            .order_by(Section.position.asc())
            .all()
        )

    def count_accepted_unfinished(self, project_id: str) -> int:
        """Accepted sections whose recommendations have not completed yet."""
        return (
            self.db.query(Section)
            .filter(
                Section.project_id == project_id,
                Section.status == SectionStatus.ACCEPTED,
                (Section.recommendations_status.is_(None))
                | (Section.recommendations_status != RunStatus.COMPLETED),
            )
            .count()
        )

    def create_templates(self, project_id: str) -> List[Section]:
        """Create the template sections that do not exist yet. Idempotent."""
        existing = {s.slug for s in self.list_for_project(project_id)}
        position = len(existing)
        for template in TEMPLATE_SECTIONS:
            if template["slug"] in existing:
                continue
            self.db.add(Section(
                project_id=project_id,
                name=template["name"],
                slug=template["slug"],
                description=template["description"],
                section_type=SectionType.TEMPLATE,
                status=SectionStatus.ACCEPTED,
                position=position,
            ))
            position += 1
        self.db.commit()
        return self.list_for_project(project_id)

    def delete_pending_suggestions(self, project_id: str) -> int:
        """Remove AI-suggested sections the user has not accepted or rejected."""
        return (
            self.db.query(Section)
            .filter(
                Section.project_id == project_id,
                Section.section_type == SectionType.AI_GENERATED,
                Section.status == SectionStatus.PENDING,
            )
            .delete(synchronize_session=False)
        )
