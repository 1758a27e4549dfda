"""Deterministic content: failure placeholders, markdown rendering, guidance notes.

Placeholders are built only from inputs already known before the sandbox
ran, so a failed job always leaves readable content behind.
"""

from typing import Any, Dict, List, Optional

from ..models import Recommendation


def count_changed_lines(diff: Optional[str]) -> int:
    """Added plus removed lines in a unified diff, ignoring file headers."""
    count = 0
    for line in (diff or "").splitlines():
        if line.startswith(("+++", "---")):
            continue
        if line.startswith(("+", "-")):
            count += 1
    return count


def commit_placeholder(commit_sha: str, title: Optional[str], message: Optional[str],
                       diff: Optional[str]) -> str:
    short_sha = (commit_sha or "")[:7]
    return (
        f"## {title or f'Commit {short_sha}'}\n"
        "\n"
        f"{message or '_No commit message provided._'}\n"
        "\n"
        "---\n"
        "\n"
        "**This update was automatically generated from a commit.**\n"
        "\n"
        f"- Commit: {short_sha}\n"
        f"- Lines changed: ~{count_changed_lines(diff)}\n"
        "\n"
        "_AI analysis was unavailable. This is a placeholder summary._\n"
    )


def pull_request_placeholder(number: int, title: Optional[str], body: Optional[str],
                             diff: Optional[str], merge_commit_sha: Optional[str] = None) -> str:
    lines = [
        f"## {title or f'Pull Request #{number}'}",
        "",
        body or "_No description provided._",
        "",
        "---",
        "",
        "**This update was automatically generated from a merged pull request.**",
        "",
        f"- Pull request: #{number}",
    ]
    if merge_commit_sha:
        lines.append(f"- Commit: {merge_commit_sha[:7]}")
    lines += [
        f"- Lines changed: ~{count_changed_lines(diff)}",
        "",
        "_AI analysis was unavailable. This is a placeholder summary._",
    ]
    return "\n".join(lines) + "\n"


def article_placeholder(recommendation: Recommendation) -> str:
    return (
        f"# {recommendation.title}\n"
        "\n"
        "_Article generation failed. Please try again._\n"
        "\n"
        "## What this article should cover\n"
        "\n"
        f"{recommendation.description or ''}\n"
        "\n"
        "## Why this article is needed\n"
        "\n"
        f"{recommendation.justification or ''}\n"
    )


def render_markdown(structured: Dict[str, Any]) -> str:
    """Render structured article content (introduction, steps, ...) as markdown."""
    markdown: List[str] = []

    if structured.get("introduction"):
        markdown += [structured["introduction"], ""]

    prerequisites = structured.get("prerequisites") or []
    if prerequisites:
        markdown += ["## Prerequisites", ""]
        markdown += [f"- {item}" for item in prerequisites]
        markdown.append("")

    steps = structured.get("steps") or []
    if steps:
        markdown += ["## Steps", ""]
        for index, step in enumerate(steps, start=1):
            step = step if isinstance(step, dict) else {"title": str(step)}
            markdown += [f"### {index}. {step.get('title', '')}", "", step.get("content") or "", ""]

    tips = structured.get("tips") or []
    if tips:
        markdown += ["## Tips", ""]
        markdown += [f"- {tip}" for tip in tips]
        markdown.append("")

    if structured.get("summary"):
        markdown += ["---", "", structured["summary"]]

    return "\n".join(markdown).strip() + "\n"


def regeneration_guidance(reason: Optional[str], suggested_changes: Optional[Dict[str, Any]],
                          affected_files: Optional[List[str]]) -> str:
    """Guidance note written onto an article when an update suggestion is accepted."""
    changes = suggested_changes or {}
    parts = []
    if reason:
        parts.append(reason)
    if changes.get("update_steps"):
        parts.append("Steps that need updating: " + ", ".join(str(s) for s in changes["update_steps"]))
    if changes.get("update_introduction"):
        parts.append("Update the introduction")
    if changes.get("add_prerequisite"):
        parts.append("Add a new prerequisite")
    if changes.get("notes"):
        parts.append(changes["notes"])
    if affected_files:
        parts.append("Affected files: " + ", ".join(affected_files[:5]))
    return "\n\n".join(parts)
