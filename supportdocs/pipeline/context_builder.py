"""Assemble the context payload handed to each sandbox entry point.

Builders take already-loaded entities and return a ``SandboxInput``: the
``context.json`` document plus side files such as ``diff.patch``. Output
is deterministic for the same inputs (lists keep the order they were
loaded in). Credentials never go into the context; the job passes them
through the sandbox's secret channel instead.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..core.config import Settings
from ..models import Article, ArticleUpdateCheck, Project, Recommendation, Section, Update

# Recent updates included for project-wide recommendations.
CHANGELOG_LIMIT = 20
CHANGELOG_CONTENT_CHARS = 500


@dataclass
class SandboxInput:
    context: Dict[str, Any]
    side_files: Dict[str, str] = field(default_factory=dict)


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None or len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _section_summary(section: Section) -> Dict[str, Any]:
    return {"name": section.name, "slug": section.slug, "description": section.description}


class ContextBuilder:
    """Builds sandbox inputs for every entry point."""

    def __init__(self, settings: Settings):
        self.settings = settings

    # -- shared pieces ---------------------------------------------------

    def project_facts(self, project: Project) -> Dict[str, Any]:
        return {
            "project_name": project.name,
            "project_overview": project.project_overview,
            "analysis_summary": project.analysis_summary,
            "tech_stack": project.metadata_value("tech_stack") or [],
            "key_patterns": project.metadata_value("key_patterns") or [],
            "components": project.metadata_value("components") or [],
            "target_users": project.metadata_value("target_users") or [],
        }

    def user_context(self, project: Project) -> Dict[str, Any]:
        answers = project.user_context or {}
        return {
            "user_context": answers,
            "target_audience": answers.get("target_audience"),
            "industry": answers.get("industry"),
            "documentation_goals": answers.get("documentation_goals") or [],
            "tone_preference": answers.get("tone_preference"),
            "product_stage": answers.get("product_stage"),
            "contextual_answers": answers.get("contextual_answers") or {},
        }

    def sandbox_config(self, project: Project) -> Dict[str, str]:
        """Non-secret environment for the sandbox: model and primary repository."""
        return {
            "MODEL_ID": project.model_id or self.settings.default_model,
            "GITHUB_REPO": project.github_repo,
        }

    # -- per entry point -------------------------------------------------

    def for_codebase(self, project: Project) -> SandboxInput:
        return SandboxInput({
            "project_name": project.name,
            "repositories": [
                {"repo": r.get("repo"), "directory": r.get("directory")}
                for r in project.repositories_for_analysis()
            ],
            "user_context": project.user_context or {},
        })

    def for_commit(self, project: Project, update: Update, commit_title: Optional[str],
                   commit_message: Optional[str], diff: str) -> SandboxInput:
        context = self.project_facts(project)
        context.update({
            "commit_sha": update.commit_sha,
            "commit_title": commit_title,
            "commit_message": commit_message,
        })
        return SandboxInput(context, {"diff.patch": diff or ""})

    def for_pull_request(self, project: Project, update: Update, title: Optional[str],
                         body: Optional[str], diff: str) -> SandboxInput:
        context = self.project_facts(project)
        context.update({
            "pull_request_number": update.pull_request_number,
            "pull_request_title": title,
            "pull_request_body": body,
            "merge_commit_sha": update.commit_sha,
        })
        return SandboxInput(context, {"diff.patch": diff or ""})

    def for_article(self, project: Project, article: Article, recommendation: Recommendation,
                    source_update: Optional[Update] = None) -> SandboxInput:
        context = {
            "project_name": project.name,
            "project_overview": project.project_overview,
            "analysis_summary": project.analysis_summary,
            "tech_stack": project.metadata_value("tech_stack") or [],
            "article_title": recommendation.title,
            "article_description": recommendation.description,
            "article_justification": recommendation.justification,
        }
        if source_update is not None:
            context["source_pr_number"] = source_update.pull_request_number
            context["source_pr_title"] = source_update.title
            context["source_pr_content"] = source_update.content
        if article.regeneration_guidance:
            context["regeneration_guidance"] = article.regeneration_guidance
            context["existing_content"] = article.structured_content or article.content
        context.update(self.user_context(project))
        return SandboxInput(context)

    def for_section_recommendations(self, project: Project, section: Section,
                                    accepted_sections: Iterable[Section],
                                    article_titles: List[str],
                                    recommendation_titles: List[str]) -> SandboxInput:
        context = self.project_facts(project)
        context.update({
            "all_sections": [_section_summary(s) for s in accepted_sections],
            "section_name": section.name,
            "section_slug": section.slug,
            "section_description": section.description,
            "existing_article_titles": list(article_titles),
            "existing_recommendation_titles": list(recommendation_titles),
        })
        context.update(self.user_context(project))
        return SandboxInput(context)

    def for_all_recommendations(self, project: Project, accepted_sections: Iterable[Section],
                                article_titles: List[str],
                                recommendation_titles: List[str]) -> SandboxInput:
        context = self.project_facts(project)
        context.update({
            "sections": [_section_summary(s) for s in accepted_sections],
            "existing_article_titles": list(article_titles),
            "existing_recommendation_titles": list(recommendation_titles),
        })
        context.update(self.user_context(project))
        return SandboxInput(context)

    def for_project_recommendations(self, project: Project, recent_updates: Iterable[Update],
                                    recommendation_titles: List[str]) -> SandboxInput:
        context = self.project_facts(project)
        del context["target_users"]
        context.update({
            "existing_changelogs": [
                {"title": u.title, "content": _truncate(u.content, CHANGELOG_CONTENT_CHARS)}
                for u in list(recent_updates)[:CHANGELOG_LIMIT]
            ],
            "existing_recommendation_titles": list(recommendation_titles),
        })
        return SandboxInput(context)

    def for_update_check(self, project: Project, check: ArticleUpdateCheck,
                         articles: Iterable[Article]) -> SandboxInput:
        context = {
            "project_name": project.name,
            "project_overview": project.project_overview,
            "analysis_summary": project.analysis_summary,
            "tech_stack": project.metadata_value("tech_stack") or [],
            "target_commit": check.target_commit_sha,
            "base_commit": check.base_commit_sha,
        }
        article_list = [
            {
                "id": a.id,
                "title": a.title,
                "description": a.recommendation.description if a.recommendation else None,
                "section": a.section.name if a.section else None,
                "source_commit_sha": a.source_commit_sha,
                "introduction": a.introduction,
                "steps": [s.get("title") for s in a.steps if isinstance(s, dict)],
            }
            for a in articles
        ]
        return SandboxInput(context, {"articles.json": json.dumps(article_list, indent=2)})

    def for_sections(self, project: Project, existing_sections: Iterable[Section]) -> SandboxInput:
        context = self.project_facts(project)
        context.update({
            "existing_sections": [
                dict(_section_summary(s), status=s.status, section_type=s.section_type)
                for s in existing_sections
            ],
            "contextual_questions": project.contextual_questions or [],
        })
        context.update(self.user_context(project))
        return SandboxInput(context)

    def for_css(self, project: Project) -> SandboxInput:
        return SandboxInput({
            "project_name": project.name,
            "style_context": project.metadata_value("style_context") or {},
        })
