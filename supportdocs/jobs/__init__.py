"""Pipeline jobs, one class per queued job type."""

from typing import Dict, Type

from .base import JobDependencies, PipelineJob
from .articles import GenerateArticleJob
from .changes import AnalyzeCommitJob, AnalyzePullRequestJob
from .codebase import AnalyzeCodebaseJob, SuggestSectionsJob
from .css import GenerateCssJob
from .recommendations import (
    GenerateAllRecommendationsJob,
    GenerateProjectRecommendationsJob,
    GenerateSectionRecommendationsJob,
)
from .update_checks import CheckArticleUpdatesJob

JOB_TYPES: Dict[str, Type[PipelineJob]] = {
    job.job_type: job
    for job in (
        AnalyzeCodebaseJob,
        SuggestSectionsJob,
        AnalyzeCommitJob,
        AnalyzePullRequestJob,
        GenerateArticleJob,
        GenerateSectionRecommendationsJob,
        GenerateAllRecommendationsJob,
        GenerateProjectRecommendationsJob,
        CheckArticleUpdatesJob,
        GenerateCssJob,
    )
}

__all__ = [
    "JOB_TYPES",
    "JobDependencies",
    "PipelineJob",
    "AnalyzeCodebaseJob",
    "SuggestSectionsJob",
    "AnalyzeCommitJob",
    "AnalyzePullRequestJob",
    "GenerateArticleJob",
    "GenerateSectionRecommendationsJob",
    "GenerateAllRecommendationsJob",
    "GenerateProjectRecommendationsJob",
    "CheckArticleUpdatesJob",
    "GenerateCssJob",
]
